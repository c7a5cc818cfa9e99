import sys

from repjan.cli import main

sys.exit(main())

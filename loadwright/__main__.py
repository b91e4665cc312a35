import sys

from loadwright.cli import main

sys.exit(main())

import sys

from necocode.cli import main

sys.exit(main())

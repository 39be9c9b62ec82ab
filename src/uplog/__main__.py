import sys

from uplog.cli import main

sys.exit(main())

import sys

from shadowapi.cli import main

sys.exit(main())

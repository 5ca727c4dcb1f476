import sys

from hausdog.cli import main

sys.exit(main())

import sys

from vaultaccess.cli import main


sys.exit(main())

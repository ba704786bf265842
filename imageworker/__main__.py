import sys

from imageworker.main import main

sys.exit(main())

import sys

from tailstream.main import main

sys.exit(main())

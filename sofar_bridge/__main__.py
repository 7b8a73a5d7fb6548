import sys

from sofar_bridge.main import main

sys.exit(main())

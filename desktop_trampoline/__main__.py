import sys

from desktop_trampoline.main import main

sys.exit(main())

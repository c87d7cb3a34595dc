import sys

from kalman_filter.main import main

sys.exit(main())

import sys
from passthrough_bench.api.main import main

sys.exit(main())

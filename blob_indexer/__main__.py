import sys

from blob_indexer.indexer import main

sys.exit(main())

import sys

from mbml.chapter_06.program import main

sys.exit(main())

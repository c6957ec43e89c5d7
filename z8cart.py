#!/usr/bin/env python3
from z8_main import main
import sys

if __name__ == "__main__":
    sys.exit(main())

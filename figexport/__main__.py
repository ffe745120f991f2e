"""Run the figexport command line: ``python -m figexport export fig.pickle out.pdf``."""

import sys
from pathlib import Path

# Allow running this file directly from a source checkout
if __package__ is None or __package__ == "":
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    from figexport.cli import main
else:
    from .cli import main

if __name__ == "__main__":
    main()

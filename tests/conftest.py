import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parent.parent

# Allow importing the tools without making tools a package.
sys.path.insert(0, str(ROOT / "tools"))

"""
Entry point for cloop-tutor.

Run with:
    python main.py run topic.json --user alice
    cloop-tutor run topic.json
"""
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent))

from cloop_tutor.cli.tutor_cli import run

if __name__ == "__main__":
    run()

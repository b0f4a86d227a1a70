"""
Pytest configuration and shared fixtures for vestlock tests.
"""
import sys
from pathlib import Path

# Add project root and src/ to path
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(src_path))

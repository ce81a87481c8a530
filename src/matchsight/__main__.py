"""
Matchsight CLI Entry Point

Allows running the package as a module: python -m matchsight
"""

from matchsight.cli import main

if __name__ == "__main__":
    main()

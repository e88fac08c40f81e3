"""Issue Scout - find GitHub issues that are free to pick up.

Finds issues in a single repository that are:
- Open and unassigned
- Not cross-referenced by any pull request (when signed in)

Signing in uses GitHub's OAuth device flow; the token is stored locally.
"""

__version__ = "1.0.0"

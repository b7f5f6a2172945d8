"""git-app-auth: dynamic git credentials from GitHub Apps and access tokens.

git invokes the helper with ``get``/``store``/``erase``; the helper picks the
configured source that best matches the repository URL and answers with a
short-lived installation token (or a stored personal access token).
"""

__version__ = "0.3.0"

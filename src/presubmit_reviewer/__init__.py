"""
Presubmit Reviewer

GitHub Pull Request 자동 코드 리뷰 시스템 (GitHub Actions 및 로컬 CLI)
"""

__version__ = "1.0.0"

from .orchestrator import ReviewOrchestrator, ReviewRunResult

__all__ = ["ReviewOrchestrator", "ReviewRunResult"]

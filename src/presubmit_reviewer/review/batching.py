"""
Batch Planner

Groups file diffs into review batches bounded by a character budget.
"""

import logging
from typing import List

from ..models.pr_diff import FileDiff


logger = logging.getLogger(__name__)


class BatchPlanner:
    """
    Splits an ordered file list into batches for the review model.

    A file is never split across batches. A file larger than the budget on
    its own gets a batch of its own.
    """

    def __init__(self, max_chars: int = 725000, per_file_overhead: int = 200):
        """
        Initialize batch planner.

        Args:
            max_chars: Character budget per batch
            per_file_overhead: Estimated markup added per file in the prompt
        """
        if max_chars <= 0:
            raise ValueError("max_chars must be positive")
        self.max_chars = max_chars
        self.per_file_overhead = per_file_overhead

    def estimate_size(self, file_diff: FileDiff) -> int:
        return file_diff.diff_size + len(file_diff.filename) + self.per_file_overhead

    def plan(self, files: List[FileDiff]) -> List[List[FileDiff]]:
        """
        Create batches of files in their original order.

        Args:
            files: File diffs to review

        Returns:
            List of file batches
        """
        batches = []
        current_batch = []
        current_size = 0

        for file_diff in files:
            size = self.estimate_size(file_diff)

            if current_batch and current_size + size > self.max_chars:
                batches.append(current_batch)
                current_batch = []
                current_size = 0

            current_batch.append(file_diff)
            current_size += size

        if current_batch:
            batches.append(current_batch)

        logger.info(f"Split {len(files)} files into {len(batches)} batch(es) for review")
        return batches

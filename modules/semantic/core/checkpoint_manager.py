"""
Checkpoint Manager for the Semantic Pipeline

Persists completed stage results as JSON so that a later process can run a
single stage against the results of earlier ones.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np

from .ai_item import AiItem, DependencyGraph, IndexEntry

logger = logging.getLogger(__name__)


def _encode_result(result: Dict[str, Any]) -> Dict[str, Any]:
    encoded: Dict[str, Any] = {}
    for key, value in result.items():
        if key == 'ai_items':
            encoded[key] = [item.to_dict() for item in value]
        elif key == 'vectors':
            encoded[key] = [np.asarray(v).tolist() for v in value]
        elif key == 'dependency_graph':
            encoded[key] = value.to_dict()
        elif key == 'metadata':
            encoded[key] = [entry.to_dict() for entry in value]
        else:
            encoded[key] = value
    return encoded


def _decode_result(data: Dict[str, Any]) -> Dict[str, Any]:
    decoded: Dict[str, Any] = {}
    for key, value in data.items():
        if key == 'ai_items':
            decoded[key] = [AiItem.from_dict(item) for item in value]
        elif key == 'vectors':
            decoded[key] = [np.asarray(v, dtype=np.float32) for v in value]
        elif key == 'dependency_graph':
            decoded[key] = DependencyGraph.from_dict(value)
        elif key == 'metadata':
            decoded[key] = [IndexEntry(**entry) for entry in value]
        else:
            decoded[key] = value
    return decoded


class CheckpointManager:
    """
    Manages per-stage result files in a checkpoint directory.

    Responsibilities:
    - Save a stage result after it completes
    - Load all saved stage results to resume a run
    - Clear checkpoints after a successful run
    """

    def __init__(self, checkpoint_dir: Path = Path("./semantic_checkpoints")):
        """
        Initialize checkpoint manager.

        Args:
            checkpoint_dir: Directory holding one JSON file per stage
        """
        self.checkpoint_dir = Path(checkpoint_dir)
        logger.info(f"📋 Checkpoint manager initialized: {self.checkpoint_dir}")

    def _stage_file(self, stage: str) -> Path:
        return self.checkpoint_dir / f"{stage}.json"

    def save_stage_result(self, stage: str, result: Dict[str, Any]) -> bool:
        """
        Save a completed stage result.

        Returns:
            True if saved successfully, False otherwise
        """
        payload = {
            'stage': stage,
            'saved_at': str(datetime.now()),
            'result': _encode_result(result),
        }

        try:
            self.checkpoint_dir.mkdir(parents=True, exist_ok=True)
            with open(self._stage_file(stage), 'w') as f:
                json.dump(payload, f, indent=2)

            logger.info(f"💾 Checkpoint saved: {stage}")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.warning(f"⚠️ Failed to save checkpoint for {stage}: {e}")
            return False

    def load_stage_result(self, stage: str) -> Optional[Dict[str, Any]]:
        """Load one stage result, or None if no checkpoint exists for it."""
        path = self._stage_file(stage)
        if not path.exists():
            return None

        try:
            with open(path, 'r') as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"⚠️ Failed to load checkpoint for {stage}: {e}")
            return None

        logger.info(f"📂 Checkpoint loaded: {stage} ({payload.get('saved_at')})")
        return _decode_result(payload['result'])

    def load_results(self, stages) -> Dict[str, Dict[str, Any]]:
        """Load every available stage result, keyed by stage name."""
        results = {}
        for stage in stages:
            result = self.load_stage_result(stage)
            if result is not None:
                results[stage] = result
        return results

    def clear(self) -> bool:
        """
        Remove all stage checkpoints.

        Returns:
            True if cleared successfully, False otherwise
        """
        try:
            if self.checkpoint_dir.exists():
                for path in self.checkpoint_dir.glob('*.json'):
                    path.unlink()
            logger.info("✅ Checkpoints cleared")
            return True

        except OSError as e:
            logger.warning(f"⚠️ Failed to clear checkpoints: {e}")
            return False

    def has_checkpoint(self, stage: str) -> bool:
        return self._stage_file(stage).exists()

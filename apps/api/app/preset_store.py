"""JSON-backed storage for plate swap presets and the active sequence."""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from plate_swap import BUILTIN_PRESETS, DEFAULT_PLATE_SWAP_SEQUENCE, PlateSwapPreset

logger = logging.getLogger(__name__)


class PresetStore:
    """Stores custom presets and the active sequence in a single JSON file.

    File layout: {"custom_presets": [{name, description, sequence}, ...],
    "active_sequence": "..."}
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        logger.info(f"PresetStore initialized with path: {self.path}")

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read presets file {self.path}, starting empty: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)

    def load_custom_presets(self) -> List[PlateSwapPreset]:
        with self._lock:
            raw = self._load().get("custom_presets") or []

        presets = []
        for item in raw:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            presets.append(PlateSwapPreset(
                name=str(item["name"]),
                description=str(item.get("description") or ""),
                sequence=str(item.get("sequence") or ""),
            ))
        return presets

    def list_presets(self) -> List[PlateSwapPreset]:
        """Built-in presets first, then custom ones in saved order."""
        return list(BUILTIN_PRESETS) + self.load_custom_presets()

    def get_preset(self, name: str) -> Optional[PlateSwapPreset]:
        return next((p for p in self.list_presets() if p.name == name), None)

    def save_custom_preset(self, preset: PlateSwapPreset) -> PlateSwapPreset:
        """Add a custom preset, replacing any custom preset with the same name."""
        if any(p.name == preset.name for p in BUILTIN_PRESETS):
            raise ValueError(f"Cannot overwrite built-in preset '{preset.name}'")

        with self._lock:
            data = self._load()
            presets = [p for p in (data.get("custom_presets") or []) if isinstance(p, dict)]
            existing = next((i for i, p in enumerate(presets) if p.get("name") == preset.name), None)
            if existing is not None:
                presets[existing] = preset.to_dict()
            else:
                presets.append(preset.to_dict())
            data["custom_presets"] = presets
            self._save(data)

        logger.info(f"Saved custom preset '{preset.name}'")
        return preset

    def delete_custom_preset(self, name: str) -> bool:
        """Delete a custom preset. Returns False if no such custom preset exists."""
        if any(p.name == name for p in BUILTIN_PRESETS):
            raise ValueError(f"Cannot delete built-in preset '{name}'")

        with self._lock:
            data = self._load()
            presets = [p for p in (data.get("custom_presets") or []) if isinstance(p, dict)]
            remaining = [p for p in presets if p.get("name") != name]
            if len(remaining) == len(presets):
                return False
            data["custom_presets"] = remaining
            self._save(data)

        logger.info(f"Deleted custom preset '{name}'")
        return True

    def load_active_sequence(self) -> str:
        with self._lock:
            sequence = self._load().get("active_sequence")
        if not isinstance(sequence, str) or not sequence.strip():
            return DEFAULT_PLATE_SWAP_SEQUENCE
        return sequence

    def save_active_sequence(self, sequence: str):
        with self._lock:
            data = self._load()
            data["active_sequence"] = sequence
            self._save(data)

    def activate_preset(self, name: str) -> PlateSwapPreset:
        """Make a preset's sequence the active one.

        Raises:
            KeyError: If no preset has that name
        """
        preset = self.get_preset(name)
        if preset is None:
            raise KeyError(name)
        self.save_active_sequence(preset.sequence)
        logger.info(f"Activated preset '{name}'")
        return preset


# Global store instance
_preset_store: Optional[PresetStore] = None


def init_preset_store(path: Path) -> PresetStore:
    global _preset_store

    _preset_store = PresetStore(path)
    return _preset_store


def get_preset_store() -> Optional[PresetStore]:
    return _preset_store

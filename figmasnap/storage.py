# storage.py
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import yaml

from .errors import FlowNotFoundError
from .models import FlowConfig
from .presets import ExportPreset
from .utils import sanitize_filename

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class JsonRecordStore:
    """サニタイズした名前をキーに1レコード1ファイルで保存するストア"""

    suffix = '.json'

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def ensure_dir(self):
        self.directory.mkdir(parents=True, exist_ok=True)

    def path_for(self, name: str) -> Path:
        return self.directory / f"{sanitize_filename(name)}{self.suffix}"

    def save(self, name: str, record: Dict[str, Any]) -> Path:
        self.ensure_dir()
        path = self.path_for(name)
        path.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding='utf-8')
        return path

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        path = self.path_for(name)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding='utf-8'))

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        if path.exists():
            path.unlink()
            return True
        return False

    def records(self) -> Iterable[Tuple[Path, Dict[str, Any]]]:
        """読み込めないレコードは警告を出してスキップする"""
        if not self.directory.exists():
            return
        for path in sorted(self.directory.glob(f"*{self.suffix}")):
            try:
                record = json.loads(path.read_text(encoding='utf-8'))
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load {path.name}: {e}")
                continue
            if not isinstance(record, dict):
                logger.warning(f"Failed to load {path.name}: not an object")
                continue
            yield path, record


class PresetStore(JsonRecordStore):

    def save_preset(self, preset: ExportPreset) -> Path:
        return self.save(preset.name, preset.to_record())

    def load_presets(self) -> List[ExportPreset]:
        presets = []
        for path, record in self.records():
            try:
                presets.append(ExportPreset.from_record(record))
            except (TypeError, ValueError) as e:
                logger.warning(f"Failed to load preset {path.name}: {e}")
        logger.info(f"Loaded {len(presets)} custom presets from {self.directory}")
        return presets


class FlowStore(JsonRecordStore):
    """ガイドフローの保存・読み込み"""

    def save_flow(self, name: str, config: Union[FlowConfig, Dict[str, Any]]) -> Path:
        record = config.to_record() if isinstance(config, FlowConfig) else dict(config)
        previous = None
        try:
            previous = self.load(name)
        except ValueError:
            logger.warning(f"Overwriting unreadable flow record '{name}'")
        now = _now()
        record['name'] = name
        record['createdAt'] = (previous or {}).get('createdAt') or now
        record['updatedAt'] = now
        return self.save(name, record)

    def load_flow_record(self, name: str) -> Dict[str, Any]:
        record = self.load(name)
        if record is None:
            raise FlowNotFoundError(name)
        return record

    def load_flow(self, name: str) -> FlowConfig:
        return FlowConfig.from_record(self.load_flow_record(name))

    def list_flows(self) -> List[Dict[str, Any]]:
        flows = [
            {
                'name': record.get('name'),
                'file': path.name,
                'createdAt': record.get('createdAt'),
                'updatedAt': record.get('updatedAt'),
            }
            for path, record in self.records()
        ]
        return sorted(flows, key=lambda f: f['updatedAt'] or '', reverse=True)

    def delete_flow(self, name: str) -> bool:
        return self.delete(name)

    def export_flows(self, path: Optional[Union[str, Path]] = None) -> List[Dict[str, Any]]:
        """全フローを返し、path が指定されていれば YAML バンドルとして書き出す"""
        flows = [record for _, record in self.records()]
        if path:
            Path(path).write_text(yaml.safe_dump(flows, allow_unicode=True, sort_keys=False), encoding='utf-8')
        return flows

    def import_flows(self, source: Union[str, Path, List[Dict[str, Any]]]) -> int:
        if isinstance(source, (str, Path)):
            source = yaml.safe_load(Path(source).read_text(encoding='utf-8')) or []
        imported = 0
        for record in source:
            try:
                self.save_flow(record['name'], {k: v for k, v in record.items() if k not in ('createdAt', 'updatedAt')})
                imported += 1
            except (KeyError, TypeError, OSError) as e:
                logger.error(f"Failed to import flow {record!r:.60}: {e}")
        return imported

"""Key-value backends the automation state store persists into."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

import aiofiles

logger = logging.getLogger(__name__)

_UNSAFE_KEY_CHARS = re.compile(r'[^A-Za-z0-9_.-]')


class StateStorage(Protocol):
	async def load(self, key: str) -> dict[str, Any] | None: ...

	async def save(self, key: str, data: dict[str, Any]) -> None: ...


class MemoryStateStorage:
	"""Keeps serialized copies in a dict. Nothing survives the process."""

	def __init__(self) -> None:
		self._data: dict[str, str] = {}

	async def load(self, key: str) -> dict[str, Any] | None:
		raw = self._data.get(key)
		return json.loads(raw) if raw is not None else None

	async def save(self, key: str, data: dict[str, Any]) -> None:
		# stored as text so later mutations of `data` do not leak in
		self._data[key] = json.dumps(data)


class JsonFileStateStorage:
	"""One `<key>.json` file per key under `directory`."""

	def __init__(self, directory: str | Path):
		self.directory = Path(directory).expanduser()

	def path_for(self, key: str) -> Path:
		return self.directory / f'{_UNSAFE_KEY_CHARS.sub("_", key)}.json'

	async def load(self, key: str) -> dict[str, Any] | None:
		path = self.path_for(key)
		if not path.exists():
			return None
		async with aiofiles.open(path, 'r', encoding='utf-8') as f:
			return json.loads(await f.read())

	async def save(self, key: str, data: dict[str, Any]) -> None:
		self.directory.mkdir(parents=True, exist_ok=True)
		path = self.path_for(key)
		tmp_path = path.with_suffix('.json.tmp')
		async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
			await f.write(json.dumps(data, indent=2, ensure_ascii=False))
		tmp_path.replace(path)
		logger.debug(f'💾 State saved to {path}')

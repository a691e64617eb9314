import json
from functools import lru_cache
from pathlib import Path
from typing import Optional, Any
from code_arena.config import Settings

LOCALES_DIR = Path(__file__).parent / "data" / "locales"

_LANG_CODES = {"en": "english"}

def lang_code2language(lang_code: Optional[str]) -> str:
	"""Telegram ``language_code`` -> locale directory name; unknown codes get the default."""
	if lang_code:
		language = _LANG_CODES.get(lang_code.split("-")[0].lower())
		if language is not None and (LOCALES_DIR / language).is_dir():
			return language
	return Settings().default_language

@lru_cache(maxsize=None)
def _read_json(path: Path) -> Any:
	with open(path, encoding="utf-8") as file:
		return json.load(file)

class Localizer:
	"""
	Templates live in ``data/locales/<lang>/<file>.json``; the key ``a.b.c`` reads
	``["b"]["c"]`` from ``a.json`` (directories may nest the same way).
	"""
	def __init__(self, lang: Optional[str] = None):
		self.lang = lang or Settings().default_language
		self.root = LOCALES_DIR / self.lang
		self._templates: dict[str, str] = {}

	def _split(self, key: str) -> tuple[Path, list[str]]:
		path = self.root
		parts = key.split(".")
		for i, part in enumerate(parts):
			if (path / part).is_dir():
				path = path / part
				continue
			return path / f"{part}.json", parts[i + 1:]
		raise KeyError(f"Key {key} names a directory, not a template")

	def template(self, key: str) -> str:
		cached = self._templates.get(key)
		if cached is not None:
			return cached

		file, inner = self._split(key)
		if not file.exists():
			raise KeyError(f"Key {key} is not found. File path is {file}")
		if not inner:
			raise KeyError(f"Key {key} names a file, not a template")

		node: Any = _read_json(file)
		for part in inner:
			if not isinstance(node, dict) or part not in node:
				raise KeyError(f"Key {key} is not found")
			node = node[part]
		if not isinstance(node, str):
			raise KeyError(f"Key {key} is not a template")

		self._templates[key] = node
		return node

	def get(self, key: str, **kwargs: Any) -> str:
		return self.template(key).format(**kwargs)

	def __call__(self, key: str, **kwargs: Any) -> str:
		return self.get(key, **kwargs)

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List
from uuid import uuid4

from study_core.config.settings import settings
from study_core.domain.conversation import Message, Pack, PackStore
from study_core.domain.exceptions import BusinessError
from study_core.infrastructure.logging.logger import logger


PACKS_STORAGE_KEY = "studytools.packs.v1"


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonPackStore(PackStore):
    """Pack 列表保存在单个 JSON 文件里，文件名即固定的存储 key。

    读取是 fail-soft 的：文件缺失、JSON 损坏或顶层不是列表都视为空列表，
    单条损坏的记录被跳过。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._path = self._root / f"{PACKS_STORAGE_KEY}.json"

    @property
    def path(self) -> Path:
        return self._path

    def list_packs(self) -> List[Pack]:
        items: List[Pack] = []
        for data in self._read_raw():
            try:
                items.append(self._to_pack(data))
            except Exception as e:
                logger.warning(f"Skipped malformed pack record: {e}")
                continue
        return items

    def get_pack(self, pack_id: str) -> Pack:
        for pack in self.list_packs():
            if pack.id == pack_id:
                return pack
        raise BusinessError(code="PACK_NOT_FOUND", message=pack_id, http_status=404)

    def save_pack(self, pack: Pack) -> None:
        """新 pack 插到最前；已存在的 pack 原位更新。"""

        packs = self.list_packs()
        for idx, existing in enumerate(packs):
            if existing.id == pack.id:
                packs[idx] = pack
                break
        else:
            packs.insert(0, pack)
        self._write_all(packs)

    def delete_pack(self, pack_id: str) -> None:
        packs = self.list_packs()
        remaining = [p for p in packs if p.id != pack_id]
        if len(remaining) == len(packs):
            raise BusinessError(code="PACK_NOT_FOUND", message=pack_id, http_status=404)
        self._write_all(remaining)

    def _read_raw(self) -> List[Dict[str, Any]]:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Pack storage unreadable, treating as empty: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [d for d in data if isinstance(d, dict)]

    def _write_all(self, packs: List[Pack]) -> None:
        tmp_path = self._root / f"{PACKS_STORAGE_KEY}.{uuid4().hex}.json.tmp"
        obj = [self._to_dict(p) for p in packs]
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))

    @staticmethod
    def _to_dict(pack: Pack) -> Dict[str, Any]:
        return {
            "id": pack.id,
            "title": pack.title,
            "mode": pack.mode,
            "messages": [m.to_dict() for m in pack.messages],
            "createdAt": _iso(pack.created_at),
            "updatedAt": _iso(pack.updated_at),
        }

    @staticmethod
    def _to_pack(data: Dict[str, Any]) -> Pack:
        return Pack(
            id=data["id"],
            title=data.get("title") or "",
            mode=data["mode"],
            messages=[Message.from_dict(m) for m in data.get("messages") or []],
            created_at=_parse_dt(data["createdAt"]),
            updated_at=_parse_dt(data["updatedAt"]),
        )

"""系统指令构建工具。

指令模板按语言(locale) 存放在 prompts/<locale> 目录，
只包含助手身份、语气与当前模式；结构化 schema 不写进指令，
而是在调用上游时单独以 response_format 传入。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent
DEFAULT_MODE_LABEL = "Cheat Sheet"


@lru_cache(maxsize=4)
def _load_template(locale: str) -> str:
    fname = PROMPTS_DIR / locale / "study_assistant.md"
    return fname.read_text(encoding="utf-8")


def build_instruction(mode_label: str, locale: str = "en") -> str:
    """根据模式名生成系统指令文本。

    纯函数：相同输入总是得到相同输出；空白模式名退回默认模式。
    """

    label = " ".join((mode_label or "").split()) or DEFAULT_MODE_LABEL
    lines = _load_template(locale).strip().splitlines()
    return " ".join(line.strip() for line in lines if line.strip()).replace("{mode_label}", label)

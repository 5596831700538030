"""输出过滤模块

在返回给调用方之前裁剪命令输出，减少上下文占用。过滤顺序固定：
grep -> sort -> uniq -> head/tail -> wc

两种使用方式：
- apply_filters: 把过滤器拼接为远程 shell 管道，在服务器端过滤
- apply_filters_to_text: 对已经取回并格式化的文本在本地过滤
"""
from __future__ import annotations

import re
import shlex
from typing import Literal

from pydantic import BaseModel, Field, model_validator

WordCountMode = Literal["lines", "words", "chars"]

_WC_FLAGS: dict[str, str] = {"lines": "-l", "words": "-w", "chars": "-c"}


class OutputFilters(BaseModel):
    """输出过滤选项。"""

    grep: str | None = Field(
        default=None,
        description="只保留匹配该模式的行，默认忽略大小写。例如 grep='error'",
    )
    grep_case_sensitive: bool = Field(default=False, description="grep 是否区分大小写")
    head: int | None = Field(default=None, gt=0, description="只保留前N行（与tail互斥）")
    tail: int | None = Field(default=None, gt=0, description="只保留后N行（与head互斥）")
    sort: bool | Literal["reverse"] | None = Field(
        default=None, description="按字母排序，'reverse'为降序"
    )
    uniq: bool = Field(default=False, description="去除相邻重复行")
    wc: WordCountMode | None = Field(default=None, description="只返回行数/词数/字符数")

    @model_validator(mode="after")
    def _head_tail_exclusive(self) -> OutputFilters:
        if self.head is not None and self.tail is not None:
            raise ValueError("head与tail不能同时指定")
        return self

    def is_empty(self) -> bool:
        return (
            not self.grep
            and not self.sort
            and not self.uniq
            and self.head is None
            and self.tail is None
            and self.wc is None
        )


def apply_filters(command: str, filters: OutputFilters | None) -> str:
    """把过滤器追加为 shell 管道。

    Example:
        apply_filters("docker logs web", OutputFilters(grep="error", tail=50))
        -> "docker logs web | grep -i -- error | tail -n 50"
    """
    if filters is None or filters.is_empty():
        return command

    parts = [command]
    if filters.grep:
        flags = "" if filters.grep_case_sensitive else "-i "
        parts.append(f"grep {flags}-- {shlex.quote(filters.grep)}")
    if filters.sort:
        parts.append("sort -r" if filters.sort == "reverse" else "sort")
    if filters.uniq:
        parts.append("uniq")
    if filters.head is not None:
        parts.append(f"head -n {int(filters.head)}")
    elif filters.tail is not None:
        parts.append(f"tail -n {int(filters.tail)}")
    if filters.wc is not None:
        parts.append(f"wc {_WC_FLAGS[filters.wc]}")
    return " | ".join(parts)


def apply_filters_to_text(text: str, filters: OutputFilters | None) -> str:
    if filters is None or filters.is_empty():
        return text

    lines = text.split("\n")

    if filters.grep:
        flags = 0 if filters.grep_case_sensitive else re.IGNORECASE
        try:
            compiled = re.compile(filters.grep, flags)
        except re.error as exc:
            raise ValueError(f"grep模式无效: {filters.grep} ({exc})") from exc
        lines = [line for line in lines if compiled.search(line) is not None]

    if filters.sort:
        lines = sorted(lines, reverse=filters.sort == "reverse")

    if filters.uniq:
        deduped: list[str] = []
        for line in lines:
            if not deduped or deduped[-1] != line:
                deduped.append(line)
        lines = deduped

    if filters.head is not None:
        lines = lines[: filters.head]
    elif filters.tail is not None:
        lines = lines[-filters.tail :]

    if filters.wc == "lines":
        return str(len(lines))
    if filters.wc == "words":
        return str(len("\n".join(lines).split()))
    if filters.wc == "chars":
        return str(len("\n".join(lines)))
    return "\n".join(lines)

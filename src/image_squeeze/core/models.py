"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from image_squeeze.core.exceptions import DuplicateOutputError

if TYPE_CHECKING:
    from PIL import Image


@dataclass(frozen=True, slots=True)
class SourceFile:
    """扫描阶段得到的源图片信息。"""

    path: Path
    extension: str

    @classmethod
    def from_path(cls, path: Path) -> "SourceFile":
        return cls(path=path, extension=path.suffix.lower().lstrip("."))


@dataclass(frozen=True, slots=True)
class OutputResult:
    """一次编码产出的结果，写入后不再修改。"""

    format: str
    size: int
    binary: bytes
    output_path: Path
    info_text: Optional[str] = None
    quality: Optional[int] = None


@dataclass(slots=True)
class ImageJob:
    """单个成功解码的图片及其全部输出。"""

    job_id: int
    source: SourceFile
    original_size: int
    outputs: list[OutputResult] = field(default_factory=list)

    def add_output(self, result: OutputResult) -> None:
        """追加输出，每种格式最多一个。"""

        if any(existing.format == result.format for existing in self.outputs):
            raise DuplicateOutputError(f"{self.source.path} 已存在 {result.format} 输出")
        self.outputs.append(result)


@dataclass(frozen=True, slots=True)
class JobFailure:
    """记录单个文件在某一阶段的失败。"""

    source: SourceFile
    stage: str
    message: str
    encoder: Optional[str] = None


@dataclass(slots=True)
class DecodedImage:
    """工作进程返回的解码结果。"""

    bitmap: "Image.Image"
    size: int
    notes: tuple[str, ...] = ()


@dataclass(slots=True)
class EncodedOutput:
    """工作进程返回的编码结果。"""

    binary: bytes
    extension: str
    info_text: Optional[str] = None
    quality: Optional[int] = None


@dataclass(slots=True)
class RunSummary:
    """一次流水线运行的汇总。"""

    jobs: list[ImageJob]
    skipped: list[SourceFile]
    failures: list[JobFailure]
    decode_progress: tuple[int, int] = (0, 0)
    encode_progress: tuple[int, int] = (0, 0)

    @property
    def output_count(self) -> int:
        return sum(len(job.outputs) for job in self.jobs)

    def failed_sources(self) -> list[SourceFile]:
        """返回至少失败过一次的源文件（去重并保持顺序）。"""

        seen: dict[Path, SourceFile] = {}
        for failure in self.failures:
            seen.setdefault(failure.source.path, failure.source)
        return list(seen.values())

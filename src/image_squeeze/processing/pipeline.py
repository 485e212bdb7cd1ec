"""处理流水线：扫描、并发解码、预处理、按格式编码并写回。"""

from __future__ import annotations

import asyncio
import logging
import os
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path
from typing import Optional, Sequence

from image_squeeze.core.config import PREPROCESSOR_NAMES, PipelineConfig
from image_squeeze.core.exceptions import ImageSqueezeError
from image_squeeze.core.models import ImageJob, JobFailure, OutputResult, RunSummary, SourceFile
from image_squeeze.core.output_manager import claim_output_path, write_output
from image_squeeze.core.progress import Phase, ProgressTracker
from image_squeeze.core.report import write_csv_report
from image_squeeze.core.scanner import collect_source_files
from image_squeeze.processing.encoders import ENCODERS
from image_squeeze.processing.image_pool import EncodeRequest, ExecutorFactory, ImageHandle, ImagePool
from image_squeeze.processing.routing import route_format

LOGGER = logging.getLogger(__name__)

FINISH_TITLE = "压缩结果："
ALREADY_OPTIMIZED = "already optimized"


class _Run:
    """一次 ``process_files`` 调用内的可变状态，只在事件循环线程中修改。"""

    def __init__(self, config: PipelineConfig, tracker: ProgressTracker) -> None:
        self.config = config
        self.tracker = tracker
        self.jobs: dict[int, ImageJob] = {}
        self.handles: dict[int, ImageHandle] = {}
        self.skipped: list[SourceFile] = []
        self.failures: list[JobFailure] = []
        self.reserved_paths: set[Path] = set()
        self.pixels_untouched = not any(name in PREPROCESSOR_NAMES for name in config.preprocess_options)
        self.decoded = 0
        self.jobs_started = 0
        self.jobs_finished = 0

    def fail(self, source: SourceFile, stage: str, exc: BaseException, encoder: Optional[str] = None) -> None:
        self.failures.append(JobFailure(source=source, stage=stage, message=str(exc), encoder=encoder))

    def summary(self) -> RunSummary:
        return RunSummary(
            jobs=sorted(self.jobs.values(), key=lambda job: job.job_id),
            skipped=self.skipped,
            failures=self.failures,
            decode_progress=self.tracker.phase_progress.get(Phase.DECODING, (0, 0)),
            encode_progress=self.tracker.phase_progress.get(Phase.ENCODING, (0, 0)),
        )


async def process_files(
    paths: Sequence[Path],
    config: Optional[PipelineConfig] = None,
    *,
    tracker: Optional[ProgressTracker] = None,
    executor_factory: ExecutorFactory = ProcessPoolExecutor,
) -> RunSummary:
    """批量处理入口：解码、预处理、编码并把优化结果写回源文件旁。

    单个文件的解码/编码失败只会被记录，不会中断整批任务；
    编解码池的启动与关闭失败会直接抛出。
    """

    config = config or PipelineConfig()
    tracker = tracker or ProgressTracker()

    files = collect_source_files(paths, config.extensions, recursive=config.allow_recursive)
    LOGGER.info("发现 %d 个候选图片文件", len(files))

    run = _Run(config, tracker)
    run.reserved_paths.update(source.path for source in files)
    concurrency = config.concurrency or os.cpu_count() or 1

    try:
        async with ImagePool(concurrency, executor_factory=executor_factory) as pool:
            await _decode_phase(run, pool, files)
            await _preprocess_stage(run, pool)
            await _encode_phase(run, pool, len(files))
    except Exception:
        tracker.stop()
        raise

    tracker.finish(FINISH_TITLE)
    summary = run.summary()
    LOGGER.info(
        "处理完成：解码 %d 个，跳过 %d 个，失败 %d 个，共输出 %d 个文件",
        len(summary.jobs),
        len(summary.skipped),
        len(summary.failed_sources()),
        summary.output_count,
    )

    if config.report_path is not None:
        try:
            write_csv_report(summary, config.report_path)
        except OSError as exc:
            LOGGER.error("写入报告失败：%s", exc)

    return summary


def run_pipeline(
    paths: Sequence[Path],
    config: Optional[PipelineConfig] = None,
    *,
    tracker: Optional[ProgressTracker] = None,
    executor_factory: ExecutorFactory = ProcessPoolExecutor,
) -> RunSummary:
    """``process_files`` 的阻塞版本。"""

    return asyncio.run(process_files(paths, config, tracker=tracker, executor_factory=executor_factory))


async def _decode_phase(run: _Run, pool: ImagePool, files: list[SourceFile]) -> None:
    total = len(files)
    run.tracker.begin_phase(Phase.DECODING, "正在解码...")
    run.tracker.total_offset = total
    run.tracker.set_progress(0, total)

    async def decode_one(job_id: int, source: SourceFile) -> None:
        try:
            buffer = await asyncio.to_thread(source.path.read_bytes)
            handle = pool.ingest(buffer)
            decoded = await handle.decoded()
        except (ImageSqueezeError, OSError) as exc:
            LOGGER.warning("解码失败，已跳过 %s：%s", source.path, exc)
            run.fail(source, "decode", exc)
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("解码任务异常 %s：%s", source.path, exc)
            run.fail(source, "decode", exc)
        else:
            job = ImageJob(job_id=job_id, source=source, original_size=decoded.size)
            run.jobs[job_id] = job
            run.handles[job_id] = handle
            run.tracker.track(job)
        finally:
            run.decoded += 1
            run.tracker.set_progress(run.decoded, total)

    await asyncio.gather(*(decode_one(job_id, source) for job_id, source in enumerate(files, start=1)))


async def _preprocess_stage(run: _Run, pool: ImagePool) -> None:
    options = run.config.preprocess_options
    if not options:
        return

    for handle in run.handles.values():
        pool.preprocess(handle, options)

    async def wait_one(job_id: int, handle: ImageHandle) -> None:
        try:
            await handle.decoded()
        except Exception as exc:  # noqa: BLE001
            source = run.jobs[job_id].source
            LOGGER.warning("预处理失败，已跳过 %s：%s", source.path, exc)
            run.fail(source, "preprocess", exc)
            del run.jobs[job_id]
            del run.handles[job_id]
            run.tracker.untrack(job_id)

    await asyncio.gather(*(wait_one(job_id, handle) for job_id, handle in list(run.handles.items())))


async def _encode_phase(run: _Run, pool: ImagePool, file_count: int) -> None:
    tracker = run.tracker
    tracker.progress_offset = run.decoded
    tracker.begin_phase(Phase.ENCODING, f"正在编码（{pool.num_workers} 个工作单元）")
    tracker.set_progress(0, file_count)

    policy = run.config.encode_policy
    pending = []
    for job_id, job in sorted(run.jobs.items()):
        encoder = route_format(job.source.extension)
        if encoder is None:
            LOGGER.info("没有匹配的编码器，跳过：%s", job.source.path)
            run.skipped.append(job.source)
            continue

        try:
            destination = claim_output_path(job.source.path, ENCODERS[encoder].extension, run.reserved_paths)
        except ImageSqueezeError as exc:
            LOGGER.warning("输出冲突，已跳过 %s [%s]：%s", job.source.path, encoder, exc)
            run.fail(job.source, "write", exc, encoder)
            continue

        request = EncodeRequest({encoder: policy.mode}, policy)
        futures = pool.encode(run.handles[job_id], request)
        run.jobs_started += 1
        pending.append(_collect_outputs(run, job, futures, {encoder: destination}))

    # 多格式场景下以实际提交的任务数为准
    tracker.set_progress(run.jobs_finished, run.jobs_started)
    await asyncio.gather(*pending)


async def _collect_outputs(
    run: _Run, job: ImageJob, futures: dict[str, asyncio.Future], destinations: dict[str, Path]
) -> None:
    try:
        for encoder, future in futures.items():
            try:
                encoded = await future
            except ImageSqueezeError as exc:
                LOGGER.warning("编码失败 %s [%s]：%s", job.source.path, encoder, exc)
                run.fail(job.source, "encode", exc, encoder)
                continue
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("编码任务异常 %s [%s]：%s", job.source.path, encoder, exc)
                run.fail(job.source, "encode", exc, encoder)
                continue

            output_path = destinations[encoder]
            binary, info_text = encoded.binary, encoded.info_text
            try:
                if _keeps_source(run, job, encoder, output_path, binary):
                    # 与 oxipng 一样，无损重编码没有变小时保留原文件。
                    binary = await asyncio.to_thread(output_path.read_bytes)
                    info_text = ALREADY_OPTIMIZED
                else:
                    await asyncio.to_thread(write_output, output_path, binary)
                job.add_output(
                    OutputResult(
                        format=encoder,
                        size=len(binary),
                        binary=binary,
                        output_path=output_path,
                        info_text=info_text,
                        quality=encoded.quality,
                    )
                )
            except (ImageSqueezeError, OSError) as exc:
                LOGGER.warning("写入失败 %s [%s]：%s", job.source.path, encoder, exc)
                run.fail(job.source, "write", exc, encoder)
    finally:
        run.jobs_finished += 1
        run.tracker.set_progress(run.jobs_finished, run.jobs_started)


def _keeps_source(run: _Run, job: ImageJob, encoder: str, output_path: Path, binary: bytes) -> bool:
    return (
        run.pixels_untouched
        and not ENCODERS[encoder].lossy
        and output_path == job.source.path
        and len(binary) >= job.original_size
    )

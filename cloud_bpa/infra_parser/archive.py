"""ZIP archive handling: safety checks first, then independent per-entry parsing."""

import io
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import SafetyViolation, StructuralParseError
from ..logging_config import get_component_logger
from ..models import InfraFormat, Resource, ResourceGraph, ScanMetadata, ZipContents
from .detect import detect_format, is_infrastructure_file

logger = get_component_logger("parser.archive")

ZIP_SIGNATURE = b"PK\x03\x04"
ARCHIVE_FORMATS = (InfraFormat.CLOUDFORMATION, InfraFormat.TERRAFORM, InfraFormat.CDK)

# (entry name, text, format) -> graph
DocumentParser = Callable[[str, str, InfraFormat], ResourceGraph]

# Damaged deflate streams, encrypted entries, unsupported compression and
# CRC or length mismatches against the central directory
_ENTRY_READ_ERRORS = (zipfile.BadZipFile, EOFError, zlib.error, RuntimeError, NotImplementedError)


@dataclass(frozen=True)
class ZipLimits:
    max_entries: int = 100
    max_entry_bytes: int = 50 * 1024 * 1024
    max_total_bytes: int = 100 * 1024 * 1024
    workers: int = 4


def is_zip_payload(data: bytes, file_name: str) -> bool:
    return file_name.lower().endswith(".zip") or data[:4] == ZIP_SIGNATURE


def decode_text(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="ignore")


def validate_entries(infos: Sequence[zipfile.ZipInfo], file_name: str, limits: ZipLimits) -> None:
    """Reject the whole archive on any count, size or path violation."""
    if len(infos) > limits.max_entries:
        raise SafetyViolation(
            f"ZIP file contains too many entries ({len(infos)} > {limits.max_entries})", file_name=file_name)

    total = 0
    for info in infos:
        name = info.filename
        if ".." in name or name.startswith("/"):
            raise SafetyViolation(f"Suspicious file path detected: {name}", file_name=file_name)
        if info.file_size > limits.max_entry_bytes:
            raise SafetyViolation(f"File {name} is too large ({info.file_size} bytes)", file_name=file_name)
        total += info.file_size

    if total > limits.max_total_bytes:
        raise SafetyViolation(f"ZIP archive too large when uncompressed ({total} bytes)", file_name=file_name)


def should_skip(info: zipfile.ZipInfo) -> bool:
    """Directories, dotfiles, macOS resource forks and non-infrastructure files."""
    name = info.filename
    if info.is_dir() or "__MACOSX" in name:
        return True
    if any(part.startswith(".") for part in name.split("/") if part):
        return True
    return not is_infrastructure_file(name)


def _read_entries(archive: zipfile.ZipFile, infos: Sequence[zipfile.ZipInfo],
                  file_name: str) -> List[Tuple[str, bytes]]:
    """Reads stop at the declared size; a body that disagrees with its header fails the CRC check."""
    entries: List[Tuple[str, bytes]] = []
    for info in infos:
        if should_skip(info):
            continue
        try:
            with archive.open(info) as handle:
                data = handle.read()
        except _ENTRY_READ_ERRORS as e:
            raise StructuralParseError(
                f"Corrupt ZIP archive entry {info.filename}", file_name=file_name, cause=str(e)) from e
        entries.append((info.filename, data))
    return entries


def _parse_entry(entry_name: str, data: bytes, hint: Optional[InfraFormat],
                 parse_document: DocumentParser) -> Optional[ResourceGraph]:
    content = decode_text(data)
    fmt = detect_format(entry_name, content, hint)
    if fmt not in ARCHIVE_FORMATS:
        logger.debug(f"Skipping {entry_name}: {fmt.value} is not parsed inside archives")
        return None
    return parse_document(entry_name, content, fmt)


def parse_zip(data: bytes, file_name: str, hint: Optional[InfraFormat],
              limits: ZipLimits, parse_document: DocumentParser) -> ResourceGraph:
    """
    Parse every infrastructure file inside a ZIP archive.

    Safety limits are checked against the central directory before any entry
    is read. A failing entry is logged and skipped; an archive that yields no
    resources at all is rejected.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise StructuralParseError("Invalid ZIP archive", file_name=file_name, cause=str(e)) from e

    with archive:
        infos = archive.infolist()
        validate_entries(infos, file_name, limits)
        entries = _read_entries(archive, infos, file_name)

    results: Dict[int, ResourceGraph] = {}
    if entries:
        with ThreadPoolExecutor(max_workers=max(1, min(limits.workers, len(entries)))) as pool:
            futures = {
                pool.submit(_parse_entry, name, payload, hint, parse_document): index
                for index, (name, payload) in enumerate(entries)
            }
            for future in as_completed(futures):
                index = futures[future]
                try:
                    graph = future.result()
                except Exception as e:
                    logger.warning(f"Error processing file {entries[index][0]} in ZIP {file_name}: {e}")
                    continue
                if graph is not None:
                    results[index] = graph

    resources: List[Resource] = []
    processed: List[str] = []
    for index in sorted(results):
        entry_name = entries[index][0]
        for resource in results[index].resources:
            location = resource.location.model_copy(
                update={"file": f"{file_name}/{entry_name}", "zip_entry": entry_name})
            resources.append(resource.model_copy(update={"location": location}))
        processed.append(entry_name)

    if not resources:
        raise StructuralParseError("No valid infrastructure files found in ZIP archive", file_name=file_name)

    logger.info(f"Parsed {len(resources)} resources from {len(processed)} files in {file_name}")
    return ResourceGraph(
        resources=resources,
        metadata=ScanMetadata(
            file_name=file_name,
            file_type="ZIP Archive",
            analysis_type=InfraFormat.ZIP.value,
            zip_contents=ZipContents(total_files=len(processed), processed_files=processed),
        ),
    )

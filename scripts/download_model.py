#!/usr/bin/env python3
"""
Download the Vosk Spanish model for ALMA.

Fetches the model zip, unpacks it next to the configured model path and
removes the archive. Skips the download when the model directory already
exists.

Usage:
  python scripts/download_model.py
  python scripts/download_model.py --url https://alphacephei.com/vosk/models/vosk-model-small-es-0.42.zip \
      --model-path models/vosk-model-small-es-0.42
"""

import argparse
import sys
import zipfile
from pathlib import Path

import httpx

SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from alma_brain.config import settings  # noqa: E402


def download(url: str, dest: Path) -> None:
    print(f"Downloading {url}")
    with httpx.stream("GET", url, follow_redirects=True, timeout=60.0) as resp:
        resp.raise_for_status()
        total = int(resp.headers.get("content-length") or 0)
        done = 0
        with open(dest, "wb") as f:
            for chunk in resp.iter_bytes(chunk_size=1 << 20):
                f.write(chunk)
                done += len(chunk)
                if total:
                    print(
                        f"\r  {done * 100 / total:5.1f}% ({done / 1024 / 1024:.1f} MB)",
                        end="", flush=True,
                    )
    print()


def extract(archive: Path, target_dir: Path) -> None:
    print(f"Extracting into {target_dir}")
    with zipfile.ZipFile(archive) as zf:
        zf.extractall(target_dir)


def main() -> int:
    parser = argparse.ArgumentParser(description="Download the Vosk model used by ALMA")
    parser.add_argument("--url", default=settings.asr.model_url, help="Model zip URL")
    parser.add_argument(
        "--model-path", type=Path, default=settings.asr.model_path,
        help="Directory the unpacked model should end up in",
    )
    args = parser.parse_args()

    model_path = args.model_path
    if not model_path.is_absolute():
        model_path = PROJECT_ROOT / model_path

    if model_path.exists():
        print(f"Model already present at {model_path}, skipping download")
        return 0

    models_dir = model_path.parent
    models_dir.mkdir(parents=True, exist_ok=True)
    archive = models_dir / Path(args.url).name

    try:
        download(args.url, archive)
        extract(archive, models_dir)
    except (httpx.HTTPError, zipfile.BadZipFile, OSError) as exc:
        print(f"Download failed: {exc}", file=sys.stderr)
        print(
            "Download the model manually from https://alphacephei.com/vosk/models "
            f"and unzip it into {models_dir}",
            file=sys.stderr,
        )
        return 1
    finally:
        archive.unlink(missing_ok=True)

    if not model_path.exists():
        print(f"Archive did not contain {model_path.name}", file=sys.stderr)
        return 1

    print(f"Model ready at {model_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Bulk-load reference signatures from a folder of images.

Usage:
  python signscan/scripts/seed_references.py path/to/samples [references.json]

File names carry the record fields: "<label>__<category>.<ext>", e.g.
  Dr_Jane_Smith__Cardiology.jpg  ->  label "Dr Jane Smith", category "Cardiology"
Files without "__" get category "Unknown". Non-image files are skipped.
"""
import mimetypes
import os
import sys
from pathlib import Path

ROOT = Path(__file__).parents[2]
sys.path.insert(0, str(ROOT))

from signscan.adapters.upload import load_upload
from signscan.orchestrator.errors import CaptureError
from signscan.services.repository import JsonReferenceRepository, new_reference
from signscan.services.status_store import StatusStore


def parse_name(path: Path) -> tuple[str, str]:
    stem = path.stem
    label, _, category = stem.partition("__")
    return label.replace("_", " ").strip(), (category.replace("_", " ").strip() or "Unknown")


def main():
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    samples = Path(sys.argv[1])
    target = Path(sys.argv[2] if len(sys.argv) > 2 else os.getenv("REFERENCES_PATH", "signscan/data/references.json"))

    status = StatusStore()
    repo = JsonReferenceRepository(status, target)
    added = 0
    for path in sorted(samples.iterdir()):
        if not path.is_file():
            continue
        content_type, _ = mimetypes.guess_type(path.name)
        label, category = parse_name(path)
        try:
            image = load_upload(path.read_bytes(), content_type, path.name)
            repo.append(new_reference(label, category, image))
        except CaptureError as e:
            print(f"  ❌  {path.name}  ({e.code})")
            continue
        added += 1
        print(f"  ✅  {label} / {category}  ← {path.name}  {image.width}x{image.height}")

    print()
    print(f"Done — {added} references added to {target} ({len(repo.list())} total)")


if __name__ == "__main__":
    main()

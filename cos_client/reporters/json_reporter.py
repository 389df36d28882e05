"""JSON reporter for structured upload summaries.

Writes one JSON document per finished upload, suitable for scripts and
for keeping a record of the parts that made up an object.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cos_client.models import Part, UploadResult, UploadSession
from cos_client.reporters.base import Reporter


class JsonReporter(Reporter):
    """JSON reporter for structured output.

    Args:
        output_path: Optional file path to write JSON output
    """

    def __init__(self, output_path: Optional[str] = None):
        self.output_path = output_path
        self._parts: dict[int, dict] = {}
        self.output: Optional[dict] = None

    def on_upload_start(self, session: UploadSession) -> None:
        self._parts = {}

    def on_part_complete(self, session: UploadSession, part: Part, size: int) -> None:
        self._parts[part.part_number] = {
            "part_number": part.part_number,
            "etag": part.etag,
            "size": size,
        }

    def on_upload_complete(self, result: UploadResult) -> None:
        self.output = self._generate_output(result.session, "done")
        self.output["etag"] = result.etag
        self.output["size"] = result.size
        self._write_to_file(self.output)

    def on_upload_aborted(self, session: UploadSession, error: BaseException) -> None:
        self.output = self._generate_output(session, "aborted")
        self.output["error"] = str(error)
        self._write_to_file(self.output)

    def _generate_output(self, session: UploadSession, status: str) -> dict:
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "bucket": session.bucket,
            "key": session.key,
            "upload_id": session.upload_id,
            "status": status,
            "parts": [self._parts[n] for n in sorted(self._parts)],
        }

    def _write_to_file(self, output: dict) -> None:
        if not self.output_path:
            return

        path = Path(self.output_path)

        # Create parent directories if needed
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(output, f, indent=2)

import asyncio
import base64
import shutil
import tempfile
import unittest
from pathlib import Path

from ai_agent_chat.attachments import attachment_from_bytes, load_attachment, load_attachments, upload_prompt
from ai_agent_chat.models import AttachmentKind


class AttachmentTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = Path(tempfile.mkdtemp(prefix="attachments-"))

    def tearDown(self) -> None:
        shutil.rmtree(self._tmp_dir, ignore_errors=True)

    def test_load_attachment_reads_file_and_derives_kind(self) -> None:
        path = self._tmp_dir / "script.py"
        path.write_bytes(b"print('hi')\n")

        attachment = asyncio.run(load_attachment(path))

        self.assertEqual("script.py", attachment.name)
        self.assertIs(AttachmentKind.CODE, attachment.kind)
        self.assertEqual(12, attachment.size)
        self.assertEqual(b"print('hi')\n", attachment.data)
        self.assertIsNone(attachment.preview)

    def test_images_get_base64_preview(self) -> None:
        attachment = attachment_from_bytes("photo.png", b"\x89PNG")
        self.assertIs(AttachmentKind.IMAGE, attachment.kind)
        self.assertEqual(base64.b64encode(b"\x89PNG").decode(), attachment.preview)

    def test_missing_file_raises(self) -> None:
        with self.assertRaises(OSError):
            asyncio.run(load_attachment(self._tmp_dir / "missing.txt"))

    def test_load_attachments_skips_unreadable(self) -> None:
        good = self._tmp_dir / "notes.md"
        good.write_text("# notes", encoding="utf-8")

        attachments = asyncio.run(load_attachments([good, self._tmp_dir / "missing.txt"]))

        self.assertEqual(["notes.md"], [a.name for a in attachments])

    def test_upload_prompt(self) -> None:
        one = attachment_from_bytes("a.txt", b"a")
        two = attachment_from_bytes("b.txt", b"b")
        self.assertEqual("I've uploaded a.txt. Please analyze it.", upload_prompt([one]))
        self.assertEqual("I've uploaded 2 files. Please analyze them.", upload_prompt([one, two]))


if __name__ == "__main__":
    unittest.main()

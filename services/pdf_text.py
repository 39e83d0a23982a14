import io

from pypdf import PdfReader

from utils.errors import ExtractionError


def extract_pdf_text(payload: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(payload))
        return "\n".join(page.extract_text() or "" for page in reader.pages)
    except Exception as exc:  # pypdf raises a wide range of errors on damaged files
        raise ExtractionError(f"PDF text extraction failed: {exc}") from exc

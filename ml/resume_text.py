# ml/resume_text.py
import re
from io import BytesIO
from typing import Dict

import mammoth
import pdfplumber

SECTION_HEADINGS = {
    "summary": ["summary", "professional summary", "profile", "objective", "about me"],
    "experience": ["experience", "work experience", "professional experience", "employment history", "work history"],
    "education": ["education", "academic background", "qualifications"],
    "skills": ["skills", "technical skills", "core competencies", "key skills"],
    "projects": ["projects", "personal projects", "selected projects"],
}

EMAIL_RE = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
PHONE_RE = re.compile(r"(?:\+?\d{1,3}[\s.-]?)?(?:\(?\d{2,4}\)?[\s.-]?)\d{3,4}[\s.-]?\d{3,4}")
LINKEDIN_RE = re.compile(r"(?:https?://)?(?:www\.)?linkedin\.com/in/[\w-]+/?", re.IGNORECASE)


class ResumeTextParser:
    """Pulls plain text out of uploaded resumes and splits it into sections."""

    def extract_text(self, content: bytes, filename: str = "") -> str:
        name = (filename or "").lower()
        if name.endswith(".pdf") or content[:5] == b"%PDF-":
            return self.extract_text_from_pdf_bytes(content)
        if name.endswith(".docx"):
            return self.extract_text_from_docx_bytes(content)
        return content.decode("utf-8", errors="ignore")

    def extract_text_from_pdf_bytes(self, content: bytes) -> str:
        with pdfplumber.open(BytesIO(content)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
        return "\n".join(pages)

    def extract_text_from_docx_bytes(self, content: bytes) -> str:
        result = mammoth.extract_raw_text(BytesIO(content))
        return (result.value or "").strip()

    def clean_up_text(self, text: str) -> str:
        text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
        text = re.sub(r"[ \t\u00a0]+", " ", text)
        lines = [ln.strip() for ln in text.split("\n")]
        text = "\n".join(lines)
        return re.sub(r"\n{3,}", "\n\n", text).strip()

    def _heading_for(self, line: str):
        key = line.strip().rstrip(":").lower()
        if len(key) > 40:
            return None
        for section, names in SECTION_HEADINGS.items():
            if key in names:
                return section
        return None

    def define_sections(self, text: str) -> Dict[str, str]:
        sections: Dict[str, list] = {}
        current = "header"
        for line in (text or "").split("\n"):
            heading = self._heading_for(line)
            if heading:
                current = heading
                sections.setdefault(current, [])
                continue
            sections.setdefault(current, []).append(line)
        return {k: "\n".join(v).strip() for k, v in sections.items() if "\n".join(v).strip()}

    def gather_contact_info_from_text(self, text: str) -> Dict[str, str]:
        text = text or ""
        contacts = {}
        m = EMAIL_RE.search(text)
        if m:
            contacts["email"] = m.group(0)
        m = LINKEDIN_RE.search(text)
        if m:
            contacts["linkedin"] = m.group(0)
        for m in PHONE_RE.finditer(text):
            digits = re.sub(r"\D", "", m.group(0))
            if 7 <= len(digits) <= 15:
                contacts["phone"] = m.group(0).strip()
                break
        return contacts

# backend/clgen/services/cover_letter.py
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import httpx

from clgen.errors import GenerationUnavailable
from clgen.services.llm_groq import GroqLLM

log = logging.getLogger(__name__)

SYSTEM = "You are an expert cover letter writer."

USER_TEMPLATE = """\
Generate a professional, ATS-friendly cover letter based on the following information:

RESUME CONTENT:
{resume}

JOB INFORMATION:
- Job Title: {job_title}
- Company: {company}
- Job Description: {job_description}

INSTRUCTIONS:
1. Create a compelling cover letter that highlights relevant skills and experiences from the resume
2. Make it specific to the job title and company
3. Use professional language and tone
4. Keep it concise (300-400 words)
5. Include a clear opening, body paragraphs, and closing
6. Make it ATS-friendly with standard formatting
7. Address the hiring manager professionally
8. Show enthusiasm for the role and company

FORMAT:
- Use proper business letter format
- Include date, recipient address, salutation, body, and closing
- Make it ready for immediate use

Generate a professional cover letter that will help the candidate stand out for this specific position.
"""


def build_prompt(resume_text: str, job_title: str, company: str, job_description: str) -> List[Dict[str, str]]:
    # str.format does not re-scan substituted values, so braces in a résumé are safe
    user = USER_TEMPLATE.format(
        resume=resume_text,
        job_title=job_title,
        company=company,
        job_description=job_description,
    )
    return [
        {"role": "system", "content": SYSTEM},
        {"role": "user", "content": user},
    ]


class LetterGenerator:
    def __init__(self, llm: Optional[GroqLLM] = None, temperature: float = 0.7):
        self.llm = llm or GroqLLM()
        self.temperature = temperature

    async def generate(self, resume_text: str, job_title: str, company: str, job_description: str = "") -> str:
        messages = build_prompt(resume_text or "", job_title, company, job_description or "")
        try:
            text = await self.llm.chat(messages, temperature=self.temperature)
        except httpx.HTTPStatusError as e:
            log.error("LLM returned %s: %s", e.response.status_code, e.response.text[:500])
            raise GenerationUnavailable("Failed to generate cover letter with AI") from e
        except httpx.HTTPError as e:
            log.error("LLM transport error: %r", e)
            raise GenerationUnavailable("Failed to generate cover letter with AI") from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            log.error("Unexpected LLM response payload: %r", e)
            raise GenerationUnavailable("Failed to generate cover letter with AI") from e
        except RuntimeError as e:
            # missing API key
            log.error("LLM not configured: %s", e)
            raise GenerationUnavailable(str(e)) from e
        if not isinstance(text, str):
            log.error("LLM returned no text content")
            raise GenerationUnavailable("Failed to generate cover letter with AI")
        return text

from .constants import DEPTH_THRESHOLD, MODEL_DEPTH_THRESHOLD, REMEDIATION_THRESHOLD
from .models import JobContext, ResumeContext

SYSTEM_INSTRUCTIONS = {
    "interviewer": (
        "You are an experienced technical interviewer. You write clear, spoken-style questions "
        "and always answer with the exact JSON structure requested, with no surrounding prose."
    ),
    "grader": (
        "You are a strict but fair technical assessor. You compare a candidate's spoken answer with "
        "a reference answer and always answer with the exact JSON structure requested."
    ),
}


def _bullets(items: list[str]) -> str:
    if not items:
        return "- (none listed)"
    return "\n".join(f"- {item}" for item in items)


def format_job_context(job: JobContext) -> str:
    return f"""Title: {job.title or "(unspecified)"}
Seniority: {job.seniority or "(unspecified)"}
Tech stack:
{_bullets(job.tech_stack)}
Description:
{job.description or "(none)"}"""


def format_resume_context(resume: ResumeContext) -> str:
    return f"""Summary:
{resume.summary or "(none)"}
Skills:
{_bullets(resume.skills)}
Work history:
{_bullets(resume.work_history)}
Projects:
{_bullets(resume.projects)}
Certifications:
{_bullets(resume.certifications)}"""


def primary_questions_prompt(job: JobContext, resume: ResumeContext) -> str:
    """Prompt for the initial primary question list."""

    seniority = job.seniority or "the stated"

    return f"""Analyze this job posting and resume and generate comprehensive interview questions.

Job posting:
{format_job_context(job)}

Resume:
{format_resume_context(resume)}

Cover ALL of these categories:
1. Introduction & background (start with an icebreaker such as "Tell me about yourself")
2. Deep dives into each technology in the job's tech stack that the candidate claims
3. Past projects and work experience
4. Problem solving appropriate to the role
5. Advanced topics scaled to {seniority} seniority
6. A closing question such as "Do you have any questions for us?"

For TECHNICAL questions, you MUST provide the correct answer.

Return ONLY a JSON array in this exact format:
[
  {{"question": "Tell me about yourself", "category": "non-technical", "answer": ""}},
  {{"question": "What is a closure in JavaScript?", "category": "technical", "answer": "A closure is a function bundled with its lexical scope"}},
  {{"question": "Describe your most recent project", "category": "non-technical", "answer": ""}}
]

Generate 15-20 questions. Mark technical questions as "technical" and all others as "non-technical".
Ensure at least 80% are technical questions."""


def reference_answer_prompt(question: str) -> str:
    """Prompt for a reference answer plus citations for a technical question."""

    return f"""For this technical question, provide a comprehensive ideal answer with supporting sources:

Question: {question}

Generate:
1. A detailed, technically accurate ideal answer
2. 2-3 authoritative source URLs that verify the answer (documentation, official sites, reputable tech resources)

Return ONLY a JSON object:
{{
  "ideal_answer": "comprehensive technical answer",
  "source_urls": [
    "https://example.com/source1",
    "https://example.com/source2"
  ]
}}

Ensure sources are real, authoritative URLs (official documentation, standards bodies, reputable tech resources)."""


def evaluate_answer_prompt(question: str, reference_answer: str, candidate_answer: str) -> str:
    """Prompt that scores a candidate answer against the reference answer."""

    return f"""Compare these answers and determine correctness percentage:

Question: {question}
Ideal Answer: {reference_answer}
Candidate's Answer: {candidate_answer}

Analyze the candidate's answer against the ideal answer. Consider:
- Technical accuracy
- Completeness of explanation
- Correct terminology usage
- Conceptual understanding

Return ONLY a JSON object:
{{
  "correctness": 85,
  "reason": "Brief explanation of scoring",
  "route_action": "next_difficulty"
}}

Where:
- correctness: integer 0-100 score
- reason: brief explanation
- route_action: "next_difficulty" (>={MODEL_DEPTH_THRESHOLD}%), "normal_flow" \
({REMEDIATION_THRESHOLD}-{MODEL_DEPTH_THRESHOLD}%), or "followup" (<={REMEDIATION_THRESHOLD}%)"""


def depth_questions_prompt(question: str, correct_answer: str) -> str:
    """Prompt for the medium and hard follow-ups of a well-answered question."""

    return f"""Based on this technical question:
Question: {question}
Correct Answer: {correct_answer}

The candidate scored at least {DEPTH_THRESHOLD}% on it. Generate 2 follow-up questions:
1. MEDIUM difficulty - dig deeper into the topic
2. HARD difficulty - advanced/complex scenario

Return ONLY a JSON array:
[
  {{"question": "medium question", "difficulty": "medium", "answer": "correct answer"}},
  {{"question": "hard question", "difficulty": "hard", "answer": "correct answer"}}
]"""


def remediation_question_prompt(question: str, wrong_answer: str) -> str:
    """Prompt for one clarifying question after a very poor answer."""

    return f"""The candidate gave a completely wrong answer:

Question: {question}
Wrong Answer: {wrong_answer}

Generate ONE strong follow-up question to clarify their understanding or correct their misconception.

Return ONLY a JSON object:
{{"question": "your follow-up question"}}"""

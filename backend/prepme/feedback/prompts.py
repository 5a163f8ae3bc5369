from prepme.feedback.models import CATEGORY_NAMES

FEEDBACK_SYSTEM_PROMPT = (
    "You are a professional interviewer analyzing a mock interview. "
    "Your task is to evaluate the candidate based on structured categories"
)

_CATEGORY_GUIDE = {
    "Communication Skills": "Clarity, articulation, structured responses.",
    "Technical Knowledge": "Understanding of key concepts for the role.",
    "Problem-Solving": "Ability to analyze problems and propose solutions.",
    "Cultural & Role Fit": "Alignment with company values and job role.",
    "Confidence & Clarity": "Confidence in responses, engagement, and clarity.",
}


def format_transcript(transcript: list[dict]) -> str:
    return "".join(f"- {turn['role']}: {turn['content']}\n" for turn in transcript)


def build_feedback_prompt(transcript: list[dict]) -> str:
    categories = "\n".join(f"- **{name}**: {_CATEGORY_GUIDE[name]}" for name in CATEGORY_NAMES)
    return f"""
You are an AI interviewer analyzing a mock interview. Your task is to evaluate the candidate based on structured categories. Be thorough and detailed in your analysis. Don't be lenient with the candidate. If there are mistakes or areas for improvement, point them out.
Transcript:
{format_transcript(transcript)}
Please score the candidate from 0 to 100 in the following areas. Do not add categories other than the ones provided:
{categories}

Return JSON with total_score, category_scores (name, score, comment for each of the five areas above, using those exact names), strengths, areas_for_improvement and final_assessment.
"""

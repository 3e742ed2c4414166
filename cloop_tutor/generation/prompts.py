"""
Prompt templates for the tutoring engine.

Each template asks for JSON matching one of the schemas in
``cloop_tutor.generation.schemas`` (plain text for follow-up questions).
Format with ``str.format``; literal braces are doubled.
"""

# =============================================================================
# Answer evaluation
# =============================================================================

EVALUATION_PROMPT = """You are an expert educator evaluating a student's answer.

Question: {question}
Concept: {concept}
Expected Answer: {expected_answer}
Student's Answer: {user_answer}

Evaluate the answer for:
1. Spelling mistakes
2. Grammar errors
3. Conceptual understanding
4. Factual accuracy
5. Completeness

Return a JSON object with:
{{
  "is_correct": boolean,
  "score_percent": number (0-100),
  "error_type": "Spelling" | "Grammar" | "Conceptual" | "Factual" | "Incomplete" | "None",
  "diff_html": string using ONLY <del> around the wrong parts and <ins> around the corrections,
  "complete_answer": string with the full correct answer,
  "feedback": string with short, encouraging feedback,
  "needs_resources": boolean (true if the student seems confused)
}}"""

FOLLOW_UP_PROMPT = """Generate a follow-up question based on the student's answer.

Original Question: {question}
Concept: {concept}
Student's Answer: {user_answer}
Was Correct: {was_correct}

{direction}

Return just the question, no additional text."""

FOLLOW_UP_HARDER = (
    "The student answered correctly. Ask a slightly more challenging question "
    "about the same concept."
)
FOLLOW_UP_EASIER = (
    "The student struggled with this concept. Ask an easier or more fundamental "
    "question about the same concept."
)

# =============================================================================
# Goals and questions
# =============================================================================

GOALS_PROMPT = """Generate 5-7 progressive learning goals for the topic "{topic_title}".

Topic content:
{topic_content}

Each goal should:
- Be clear and specific (5-10 words)
- Be measurable (can ask questions about it)
- Be progressive (builds on previous goals)
- Use student-friendly language
- Be achievable through conversation

Goals should move from basic understanding to application.

Return JSON:
{{
  "goals": [
    {{"title": "Understand basic concept", "description": "Learn what {topic_title} means and why it matters", "order": 1}},
    {{"title": "Identify key features", "description": "Recognize important characteristics and properties", "order": 2}}
  ]
}}"""

QUESTIONS_PROMPT = """Generate {count} questions for the following learning goal:

Topic: {topic_title}
Goal: {goal_title} - {goal_description}

Questions should:
- Test understanding of the goal
- Vary in difficulty (easy to medium)
- Be short and precise (one sentence)
- Include a mix of conceptual and factual questions
- Include the expected answer for each question

Return JSON:
{{
  "questions": [
    {{"question": "Question text", "answer": "Expected answer", "difficulty": "easy"}}
  ]
}}"""

# =============================================================================
# Session summary and resources
# =============================================================================

RECOMMENDATIONS_PROMPT = """Generate 3-5 personalized recommendations for a student who has completed a learning session.

Topic: {topic_title}
Goals: {goal_titles}
Performance: {accuracy_percent}% accuracy
Learning Gaps: {learning_gaps}

Recommendations should:
- Be specific and actionable
- Address learning gaps if any
- Suggest ways to improve understanding
- Be encouraging and positive

Return JSON:
{{
  "recommendations": ["Recommendation 1", "Recommendation 2", "Recommendation 3"]
}}"""

EXPLANATION_PROMPT = """Explain the learning goal "{goal_title}" from the topic "{topic_title}"
to a {level} student.

Use simple language, one short example, and at most 120 words.

Return JSON:
{{
  "explanation": "..."
}}"""

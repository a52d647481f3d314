"""
Reflection Feedback — narrative feedback on the participant's reflections.

The participant's resolved policy package and reflection answers are sent
to the language model, which evaluates ethical reasoning, empathy and
policy coherence. When the model is unavailable a fixed narrative is
returned instead so the session can always be completed.
"""

from __future__ import annotations

import logging

from bean_republic.agents.text_generation import TextGenerator, generate_or_fallback
from bean_republic.simulation.catalog import REFLECTION_QUESTIONS
from bean_republic.simulation.schema import ResolvedPolicy

logger = logging.getLogger(__name__)

FEEDBACK_MAX_TOKENS = 600

FALLBACK_FEEDBACK = """Thank you for participating in the Republic of Bean refugee education policy simulation. Your policy decisions show a thoughtful approach to complex issues facing refugee education.

Based on your reflections, you demonstrate strong ethical reasoning in considering the needs of the most vulnerable populations. Your considerations about resource allocation, integration approaches, and cultural sensitivity show a nuanced understanding of the challenges in refugee education.

Your policy package shows a balance between immediate needs and long-term sustainability. The choices you made in language instruction and curriculum adaptation particularly reflect a commitment to meaningful integration while preserving cultural identity.

Areas for further consideration might include how to measure the success of these policies over time, and how to adapt them as the refugee situation evolves. Additionally, considering more stakeholder perspectives, especially from the refugee communities themselves, would strengthen the policies further.

Overall, your approach demonstrates empathy, equity considerations, and practical thinking. This balanced perspective is essential for creating effective refugee education policies."""


def build_feedback_prompt(
    package: list[ResolvedPolicy],
    answers: dict[str, str],
) -> str:
    """Assemble the evaluation prompt from the package and the answers."""
    policies_text = "\n".join(f"{p.category_name}: {p.title}" for p in package)
    reflections_text = "\n\n".join(
        f"Question: {REFLECTION_QUESTIONS.get(qid, qid)}\nAnswer: {answer}"
        for qid, answer in answers.items()
    )

    return f"""You are an AI evaluating a refugee education policy simulation.
The participant has created the following policy package:

{policies_text}

And provided these reflections on their experience:

{reflections_text}

Provide thoughtful feedback on their policy choices and reflections, addressing:
1. Ethical reasoning and equity considerations
2. Empathy and understanding of refugee challenges
3. Practical policy coherence and sustainability
4. Areas for further development or improvement

Keep your response to about 4-5 paragraphs."""


class FeedbackService:
    """Generates reflection feedback through a text generator."""

    def __init__(
        self,
        generator: TextGenerator,
        max_tokens: int = FEEDBACK_MAX_TOKENS,
        temperature: float = 0.7,
    ) -> None:
        self.generator = generator
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate_feedback(
        self,
        package: list[ResolvedPolicy],
        answers: dict[str, str],
    ) -> str:
        """
        Produce narrative feedback for a finished session.

        Args:
            package: The resolved policy package.
            answers: Reflection answers keyed by question id.

        Returns:
            Feedback text, or the fixed fallback narrative on failure.
        """
        prompt = build_feedback_prompt(package, answers)
        feedback = await generate_or_fallback(
            self.generator,
            prompt,
            fallback=FALLBACK_FEEDBACK,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        logger.info(
            "Feedback generated: policies=%d answers=%d chars=%d",
            len(package), len(answers), len(feedback),
        )
        return feedback

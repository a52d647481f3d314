"""
Simulation Catalog — the fixed content of a Republic of Bean session.

Holds the seven refugee-education policy categories (three options each),
the attribute pools stakeholders are drawn from, and the phase 3
reflection questions. The engine copies categories per session; nothing
here is ever mutated.
"""

from __future__ import annotations

from bean_republic.simulation.schema import PolicyCategory, PolicyOption

DEFAULT_BUDGET_TOTAL = 14


def _category(
    category_id: str,
    name: str,
    description: str,
    options: list[tuple[str, str, int]],
) -> PolicyCategory:
    return PolicyCategory(
        id=category_id,
        name=name,
        description=description,
        options=[
            PolicyOption(id=i, title=title, description=desc, cost=cost)
            for i, (title, desc, cost) in enumerate(options, start=1)
        ],
    )


# ════════════════════════════════════════════════════════════════
# Policy Categories
# ════════════════════════════════════════════════════════════════


REFUGEE_EDUCATION_CATEGORIES: list[PolicyCategory] = [
    _category(
        "access",
        "Access to Education",
        "Policies regarding how refugees can access educational facilities and services",
        [
            ("Separate School Facilities",
             "Create separate educational facilities exclusively for refugee children", 3),
            ("Integration with Quotas",
             "Integrate refugee children into local schools with quotas per classroom", 2),
            ("Full Integration",
             "Full integration of refugee children into local schools without restrictions", 1),
        ],
    ),
    _category(
        "language",
        "Language Instruction",
        "Approaches to language learning and instruction for refugee students",
        [
            ("Immersion Approach",
             "Refugee students learn in the local language with no special support", 1),
            ("Transitional Bilingual Education",
             "Temporary bilingual support while transitioning to local language", 2),
            ("Comprehensive Multilingual Program",
             "Extensive multilingual education supporting both local and refugee languages", 3),
        ],
    ),
    _category(
        "teachers",
        "Teacher Training",
        "Training and preparation for teachers working with refugee students",
        [
            ("Basic Online Training", "Minimal online training modules for teachers", 1),
            ("Specialized Workshops",
             "Regular in-person workshops and specialized training sessions", 2),
            ("Comprehensive Development Program",
             "Long-term professional development and certification in refugee education", 3),
        ],
    ),
    _category(
        "curriculum",
        "Curriculum Adaptation",
        "How educational curriculum is modified for refugee needs",
        [
            ("Standard Curriculum", "Use the existing curriculum without modifications", 1),
            ("Supplementary Materials",
             "Standard curriculum with supplementary materials for refugees", 2),
            ("Fully Adapted Curriculum",
             "Completely redesigned curriculum addressing refugee experiences and needs", 3),
        ],
    ),
    _category(
        "psychosocial",
        "Psychosocial Support",
        "Mental health and social-emotional support systems for refugee students",
        [
            ("Basic Counseling Services", "Limited school counselors with basic training", 1),
            ("Trauma-Informed Approach",
             "School-wide trauma-informed practices and regular counseling", 2),
            ("Comprehensive Mental Health Network",
             "Extensive network of psychologists, social workers, and specialized programs", 3),
        ],
    ),
    _category(
        "financial",
        "Financial Support",
        "Financial assistance for refugee families to support education",
        [
            ("Basic School Supplies", "Provide only essential school supplies", 1),
            ("Education Stipend", "Monthly stipend to families to cover educational expenses", 2),
            ("Comprehensive Support Package",
             "Full coverage of education costs including transportation, supplies, "
             "and additional tutoring", 3),
        ],
    ),
    _category(
        "certification",
        "Certification & Accreditation",
        "Recognition of previous education and certification of new learning",
        [
            ("Limited Recognition",
             "Minimal recognition of prior learning with difficult equivalency process", 1),
            ("Standardized Equivalency Process",
             "Clear equivalency process with some flexibility in documentation", 2),
            ("Comprehensive Recognition Framework",
             "Robust framework for recognizing prior learning and alternative "
             "assessment methods", 3),
        ],
    ),
]


def default_categories() -> list[PolicyCategory]:
    """Fresh, unselected copies of the default categories."""
    return [c.model_copy(deep=True) for c in REFUGEE_EDUCATION_CATEGORIES]


# ════════════════════════════════════════════════════════════════
# Stakeholder Attribute Pools
# ════════════════════════════════════════════════════════════════


STAKEHOLDER_NAMES = ["Amir", "Lila", "Tarek", "Maya", "Rami", "Salma", "Zain", "Leila"]

POLITICAL_IDEOLOGIES = [
    "Conservative",
    "Moderate Conservative",
    "Centrist",
    "Moderate Liberal",
    "Liberal",
]

EDUCATION_LEVELS = [
    "High School Diploma",
    "Associate's Degree",
    "Bachelor's Degree",
    "Master's Degree",
    "Doctoral Degree",
]

OCCUPATIONS = [
    "Teacher",
    "School Administrator",
    "Social Worker",
    "Community Organizer",
    "Local Business Owner",
    "Government Official",
    "Academic Researcher",
]

SOCIOECONOMIC_TIERS = [
    "Low Income",
    "Lower Middle Class",
    "Middle Class",
    "Upper Middle Class",
    "High Income",
]

STAKEHOLDER_MIN_AGE = 25
STAKEHOLDER_MAX_AGE = 64


# ════════════════════════════════════════════════════════════════
# Reflection Questions
# ════════════════════════════════════════════════════════════════


REFLECTION_QUESTIONS: dict[str, str] = {
    "equity": (
        "How did your final policy decisions address equity for the most "
        "vulnerable refugee children?"
    ),
    "integration": (
        "What approach to integration (separation, partial, or full) did you "
        "prioritize, and why?"
    ),
    "stakeholders": "How did the perspectives of different stakeholders influence your thinking?",
    "conflict": "What tensions or conflicts emerged during the group discussion phase?",
    "compromise": "What compromises did you make to achieve consensus, and were they worth it?",
    "learning": "What did you learn about refugee education policy through this simulation?",
}

"""Assemble the deck-writing prompt from the job input, the theme and the images fetched for the job."""
from dataclasses import dataclass
from typing import Dict, List, Optional

from pitchdeck.generation.themes import resolve_theme, theme_colors
from pitchdeck.models.schemas import PitchDeckData, TeamMember
from pitchdeck.prompts.loader import get_system_prompt, get_user_prompt

PROMPT_COMPONENT = "pitch_deck"
DEFAULT_LOGO_PATH = "./logo.png"


@dataclass(frozen=True)
class DeckPrompt:
    system: str
    user: str

    @property
    def text(self) -> str:
        """Single-message form, for providers without a system role."""
        return f"{self.system}\n\n{self.user}"


def format_team_members(members: List[TeamMember]) -> str:
    lines = []
    for m in members:
        if not (m.name or m.role or m.experience):
            continue
        lines.append(f"      - {m.name} ({m.role}): {m.experience}")
    return "\n".join(lines) if lines else "      - (not provided)"


def build_pitch_deck_prompt(
    data: PitchDeckData,
    image_paths: Optional[Dict[str, str]] = None,
    version: Optional[str] = None,
) -> DeckPrompt:
    """Fill the versioned pitch deck template with every input field, theme colors and image paths.
    Why available: The worker's content generation step sends exactly this prompt to the configured provider."""
    images = image_paths or {}
    theme = resolve_theme((data.theme or "").lower())
    background, text = theme_colors(theme, data.background_color, data.text_color)

    diagram = images.get("diagram")
    team = images.get("team")
    values = {
        "PROJECT_NAME": data.project_name,
        "BIG_IDEA": data.big_idea,
        "PROBLEM": data.problem,
        "TARGET_AUDIENCE": data.target_audience,
        "EXISTING_SOLUTIONS": data.existing_solutions,
        "SOLUTION": data.solution,
        "TECHNOLOGY": data.technology,
        "DIFFERENTIATORS": data.differentiators,
        "DEVELOPMENT_PLAN": data.development_plan,
        "MARKET_SIZE": data.market_size,
        "FUNDING_AMOUNT": data.funding_amount,
        "FUNDING_USE": data.funding_use,
        "VALUATION": data.valuation,
        "INVESTMENT_STRUCTURE": data.investment_structure,
        "TAM": data.tam,
        "SAM": data.sam,
        "SOM": data.som,
        "TARGET_NICHE": data.target_niche,
        "MARKET_TRENDS": data.market_trends,
        "INDUSTRY": data.industry,
        "WHY_YOU": data.why_you,
        "TEAM_MEMBERS": format_team_members(data.team_members),
        "TEAM_QUALIFICATION": data.team_qualification,
        "REVENUE_MODEL": data.revenue_model,
        "SCALING_PLAN": data.scaling_plan,
        "GTM_STRATEGY": data.gtm_strategy,
        "ACHIEVEMENTS": data.achievements,
        "NEXT_MILESTONES": data.next_milestones,
        "EMAIL": data.contact_info.email,
        "LINKEDIN": data.contact_info.linkedin,
        "SOCIALS": data.contact_info.socials,
        "KEY_TAKEAWAYS": data.key_takeaways,
        "THEME": theme,
        "BACKGROUND_COLOR": background,
        "TEXT_COLOR": text,
        "LOGO_PATH": images.get("logo") or DEFAULT_LOGO_PATH,
        "DIAGRAM_IMAGE": f", ![w:400]({diagram})" if diagram else "",
        "TEAM_IMAGE": f", ![w:60]({team})" if team else "",
    }

    user = get_user_prompt(PROMPT_COMPONENT, version=version)
    for key, value in values.items():
        user = user.replace(f"<<{key}>>", value or "")
    return DeckPrompt(system=get_system_prompt(PROMPT_COMPONENT, version=version), user=user)

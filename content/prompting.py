from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence


FREQUENCY_DAYS = {
    "daily": 30,
    "5x-week": 22,
    "3x-week": 13,
}
DEFAULT_DAYS = 30

WEEKLY_STRUCTURE = (
    "Weekly content structure (repeat this pattern):\n"
    "- Monday: Educational tip or how-to\n"
    "- Tuesday: Product/service spotlight\n"
    "- Wednesday: Customer testimonial or social proof\n"
    "- Thursday: Behind-the-scenes\n"
    "- Friday: Promotional offer or special\n"
    "- Saturday: Community/local focus\n"
    "- Sunday: Light engagement or fun content"
)

CATEGORY_FOCUS_SHARE = 60


@dataclass(frozen=True)
class BusinessContext:
    business_name: str
    business_type: str
    brand_vibe: tuple[str, ...] = ()
    primary_goal: tuple[str, ...] = ()
    posting_frequency: str = ""
    month_year: str = ""
    city: str | None = None
    neighborhood: str | None = None
    primary_offer: str | None = None
    business_description: str | None = None
    products_services: str | None = None
    permanent_context: str | None = None
    menu_items: tuple[dict[str, Any], ...] = field(default_factory=tuple)

    @property
    def location(self) -> str:
        return ", ".join(part for part in (self.city, self.neighborhood) if part)

    @classmethod
    def from_profile(cls, profile: Any, *, month_year: str = "") -> "BusinessContext":
        return cls(
            business_name=profile.business_name or "",
            business_type=profile.business_type or "",
            brand_vibe=_as_tuple(profile.brand_vibe),
            primary_goal=_as_tuple(profile.primary_goal),
            posting_frequency=profile.posting_frequency or "",
            month_year=month_year,
            city=profile.city,
            neighborhood=profile.neighborhood,
            primary_offer=profile.primary_offer,
            business_description=profile.business_description,
            products_services=profile.products_services,
            permanent_context=profile.permanent_context,
            menu_items=tuple(profile.menu_items or ()),
        )


def days_for_frequency(posting_frequency: str | None) -> int:
    return FREQUENCY_DAYS.get(posting_frequency or "", DEFAULT_DAYS)


def build_calendar_prompt(
    context: BusinessContext,
    *,
    category_focus: Sequence[str] | None = None,
) -> str:
    total_days = days_for_frequency(context.posting_frequency)
    location = context.location
    lines = [
        "You are an expert social media strategist for local businesses. "
        f"Generate a {total_days}-day Instagram content calendar for {context.month_year}.",
        "",
        _business_block(context, location),
    ]

    permanent = _permanent_instructions_block(context.permanent_context)
    if permanent:
        lines += ["", permanent]

    menu_block = _menu_block(context.menu_items, category_focus)
    if menu_block:
        lines += ["", menu_block]

    lines += [
        "",
        WEEKLY_STRUCTURE,
        "",
        "Content Rules:",
        "1. Mix post types: Reels (video-worthy), Photos (single image), "
        "Carousels (multi-image), Stories (quick/timely)",
        "2. Vary themes across these pillars: promo, education, social proof, "
        "behind-the-scenes, community, engagement",
        "3. Keep captions authentic and conversational",
        f"4. Use {'local references when relevant' if location else 'general themes'}",
        "5. Include clear CTAs (book now, visit us, DM us, tag a friend, etc.)",
        "6. Hashtags: 8-12 relevant tags, mix popular and niche",
        "7. Canva prompts should be specific and actionable for non-designers",
    ]
    if permanent:
        lines.append("8. The PERMANENT INSTRUCTIONS above override every rule in this list")
    if context.primary_offer:
        lines += [
            "",
            f'Feature the current offer "{context.primary_offer}" in 3-4 posts throughout the month.',
        ]

    lines += ["", _calendar_output_contract(context.business_type)]
    lines += [
        "",
        f"Generate exactly {total_days} days starting from the 1st of the month. "
        f"Use realistic dates for {context.month_year}.",
    ]
    return "\n".join(lines)


def build_calendar_user_prompt(context: BusinessContext) -> str:
    total_days = days_for_frequency(context.posting_frequency)
    return (
        f"Generate the {total_days}-day content calendar for "
        f"{context.business_name} in {context.month_year}."
    )


def build_regenerate_prompt(context: BusinessContext, *, previous_theme: str | None) -> str:
    lines = [
        "You are a social media expert. Regenerate a fresh, different Instagram post for this business.",
        "",
        f"Business: {context.business_name} ({context.business_type})",
    ]
    if context.business_description:
        lines.append(f"What we do: {context.business_description}")
    if context.products_services:
        lines.append(f"What we offer: {context.products_services}")
    lines += [
        f"Location: {context.location or 'Not specified'}",
        f"Brand Vibe: {', '.join(context.brand_vibe)}",
        f"Goal: {', '.join(context.primary_goal)}",
    ]
    permanent = _permanent_instructions_block(context.permanent_context)
    if permanent:
        lines += ["", permanent]
    lines += [
        "",
        f"Previous post theme was: {previous_theme or 'unknown'}",
        "Generate something DIFFERENT but equally engaging.",
        "",
        "Return ONLY valid JSON:",
        "{",
        '  "postType": "photo|reel|carousel|story",',
        '  "theme": "New theme/angle",',
        '  "captionShort": "Under 100 chars",',
        '  "captionLong": "150-250 chars with story",',
        '  "hashtags": ["8-12 relevant tags"],',
        '  "cta": "Clear call-to-action",',
        '  "canvaPrompt": "Specific design instructions",',
        '  "imageIdeas": "Visual suggestions"',
        "}",
    ]
    return "\n".join(lines)


def build_story_context(context: BusinessContext) -> str:
    lines = [
        f"Business: {context.business_name}",
        f"Type: {context.business_type}",
        f"Description: {context.business_description or 'Not provided'}",
        f"Products/Services: {context.products_services or 'Not provided'}",
        f"Brand Vibe: {', '.join(context.brand_vibe)}",
    ]
    if context.permanent_context:
        lines += ["", "Permanent Instructions:", context.permanent_context]
    return "\n".join(lines)


def build_story_prompt(context: BusinessContext, *, story_type: str, topic: str) -> str:
    poll = (
        '{"question": "Poll question?", "option1": "Option 1", "option2": "Option 2"}'
        if story_type == "poll"
        else "null"
    )
    return "\n".join(
        [
            build_story_context(context),
            "",
            f"Create an Instagram Story about: {topic}",
            f"Story Type: {story_type}",
            "",
            "Return JSON with:",
            "{",
            '  "text": "Main text overlay (2-3 short lines, max 50 chars per line)",',
            '  "caption": "Optional caption text (1-2 sentences)",',
            '  "callToAction": "Interactive CTA (e.g., \'Swipe up\', \'Tap to see more\', \'DM us\')",',
            '  "suggestedStickers": ["emoji or sticker suggestion 1", "emoji or sticker suggestion 2"],',
            '  "visualGuidance": "What the background image/video should show",',
            f'  "interactivePoll": {poll},',
            '  "backgroundColor": "Suggested background color (hex code)",',
            '  "textColor": "Suggested text color (hex code)"',
            "}",
        ]
    )


def build_brand_hashtag_prompt(
    *, business_name: str, business_type: str, products_services: str | None
) -> str:
    return (
        "Create ONE unique branded hashtag for this business. The hashtag should be:\n"
        "- Memorable and easy to spell\n"
        "- Related to the business name AND what they offer\n"
        "- Not too long (max 20 characters)\n"
        "- Unique enough that customers can use it to share their experiences\n"
        "- Include the business essence\n"
        "\n"
        f"Business Name: {business_name}\n"
        f"Business Type: {business_type}\n"
        f"What They Offer: {products_services or 'Not specified'}\n"
        "\n"
        "Return ONLY the hashtag (including the #) with no additional text or explanation. "
        "Example format: #LuccasCoffeeMoments"
    )


def build_hashtag_analysis_prompt(
    *, business_type: str, location: str, current_hashtags: Iterable[str]
) -> str:
    return (
        f"Analyze these hashtags for a {business_type} business and provide recommendations.\n"
        "\n"
        f"Business Type: {business_type}\n"
        f"Location: {location or 'Not specified'}\n"
        f"Current Hashtags: {', '.join(current_hashtags)}\n"
        "\n"
        "Please provide:\n"
        "1. Which hashtags are likely underperforming (too broad, overused, or irrelevant)\n"
        "2. Suggest 10-15 trending, niche-specific hashtags that would perform better\n"
        "3. Include a mix of high-volume (100k-500k posts), medium-volume (10k-100k posts), "
        "niche (1k-10k posts) and location-based hashtags if applicable\n"
        "\n"
        "Return your response as JSON with this structure:\n"
        "{\n"
        '  "underperforming": ["#hashtag1", "#hashtag2"],\n'
        '  "suggested": ["#hashtag1", "#hashtag2"],\n'
        '  "reasoning": "Brief explanation of recommendations"\n'
        "}"
    )


MENU_IMAGE_SYSTEM_PROMPT = (
    "You are a menu extraction assistant. Extract menu items from images and "
    "return them in a structured JSON format."
)
MENU_IMAGE_INSTRUCTIONS = (
    "Extract all menu items from this image. For each item, identify: name, "
    "description (if visible), price, and category. Return ONLY valid JSON in this "
    'exact format: {"items": [{"name": "Item Name", "description": "Description", '
    '"price": "$9.99", "category": "Category"}]}. If a field is not visible, use '
    "empty string. Be precise with prices and names."
)
WEBSITE_SYSTEM_PROMPT = (
    "You are a brand analysis assistant. Analyze website HTML and extract brand information."
)
STORY_SYSTEM_PROMPT = (
    "You are a social media content creator specializing in Instagram Stories. "
    "Create engaging, story-format content that feels native to Instagram Stories "
    "(vertical format, casual tone, interactive elements)."
)
HASHTAG_SYSTEM_PROMPT = (
    "You are a social media analytics expert specializing in Instagram hashtag strategy."
)
BRAND_HASHTAG_SYSTEM_PROMPT = (
    "You are a social media branding expert who creates memorable, unique hashtags for businesses."
)
INSTAGRAM_ANALYSIS_SYSTEM_PROMPT = (
    "You are an Instagram marketing expert who analyzes Instagram profiles "
    "and provides strategic recommendations."
)


def build_instagram_analysis_prompt(
    context: BusinessContext, *, handle: str, location: str
) -> str:
    business_type = context.business_type
    return (
        "Analyze this Instagram profile and provide strategic recommendations for content creation.\n"
        "\n"
        f"Instagram Handle: @{handle}\n"
        f"Business Type: {business_type}\n"
        f"Business Name: {context.business_name}\n"
        f"Location: {location or 'Not specified'}\n"
        f"Brand Vibe: {', '.join(context.brand_vibe)}\n"
        f"Primary Goals: {', '.join(context.primary_goal)}\n"
        "\n"
        "Provide recommendations in the following areas:\n"
        f"1. Content Style & Themes (based on typical {business_type} Instagram accounts)\n"
        f"2. Hashtag Strategy (specific to {business_type} and {location or 'the local area'})\n"
        f"3. Posting Tips (what works for {business_type} accounts)\n"
        f"4. Visual Guidance (colors, layouts, composition that work for {business_type})\n"
        "5. Engagement Tactics (how to interact with followers)\n"
        "\n"
        "Return your response as JSON with this structure:\n"
        "{\n"
        '  "contentStyle": "description",\n'
        '  "hashtagStrategy": "strategy description",\n'
        '  "postingTips": ["tip1", "tip2"],\n'
        '  "visualGuidance": ["guideline1", "guideline2"],\n'
        '  "engagementTactics": ["tactic1", "tactic2"],\n'
        '  "summary": "brief summary of key recommendations"\n'
        "}"
    )


def build_website_prompt(html: str, *, max_chars: int = 5000) -> str:
    return (
        "Analyze this website HTML and extract: 1) Brand colors (hex codes), "
        "2) Key messaging/taglines, 3) Main products/services offered, "
        "4) Brand tone (formal/casual/playful etc), 5) Target audience. Return ONLY valid JSON: "
        '{"colors": ["#hex"], "messaging": ["tagline"], "services": ["service"], '
        '"tone": "description", "audience": "description"}\n'
        "\n"
        f"HTML (first {max_chars} chars):\n"
        f"{html[:max_chars]}"
    )


def _business_block(context: BusinessContext, location: str) -> str:
    lines = [
        "Business Details:",
        f"- Name: {context.business_name}",
        f"- Type: {context.business_type}",
    ]
    if context.business_description:
        lines.append(f"- What we do: {context.business_description}")
    if context.products_services:
        lines.append(f"- What we offer: {context.products_services}")
    lines += [
        f"- Location: {location or 'Not specified'}",
        f"- Brand Vibe: {', '.join(context.brand_vibe)}",
        f"- Primary Goal: {', '.join(context.primary_goal)}",
    ]
    if context.primary_offer:
        lines.append(f"- Current Offer: {context.primary_offer}")
    return "\n".join(lines)


def _permanent_instructions_block(permanent_context: str | None) -> str:
    if not permanent_context or not permanent_context.strip():
        return ""
    return f"PERMANENT INSTRUCTIONS (MUST FOLLOW IN ALL CONTENT):\n{permanent_context}"


def _menu_block(
    menu_items: Sequence[dict[str, Any]],
    category_focus: Sequence[str] | None,
) -> str:
    if category_focus:
        focus = list(category_focus)
        focused = [item for item in menu_items if item.get("category") in focus]
        listed = "\n".join(_menu_line(item, with_category=False) for item in focused)
        return "\n".join(
            [
                "CATEGORY FOCUS FOR THIS CALENDAR:",
                "This calendar should primarily feature and promote items from these "
                f"categories: {', '.join(focus)}",
                "",
                "Menu items to highlight:",
                listed or "No specific items",
                "",
                "Content Strategy:",
                f"- At least {CATEGORY_FOCUS_SHARE}% of posts should directly reference "
                "or feature these categories",
                "- Use specific product names and details from the menu items listed above",
                '- Create themed posts around these categories (e.g., "Dessert Week", "Drink Specials")',
                "- Include product highlights, recipes, pairings, and customer favorites "
                "from these categories",
            ]
        )
    if menu_items:
        listed = "\n".join(_menu_line(item, with_category=True) for item in menu_items)
        return "\n".join(
            [
                "AVAILABLE MENU ITEMS (reference these in content when relevant):",
                listed,
            ]
        )
    return ""


def _menu_line(item: dict[str, Any], *, with_category: bool) -> str:
    line = f"- {item.get('name') or ''}"
    if with_category and item.get("category"):
        line += f" [{item['category']}]"
    if item.get("price"):
        line += f" ({item['price']})"
    if item.get("description"):
        line += f" - {item['description']}"
    return line


def _calendar_output_contract(business_type: str) -> str:
    type_tag = "#" + "".join((business_type or "business").lower().split())
    return "\n".join(
        [
            "Return ONLY valid JSON in this exact format:",
            "{",
            '  "items": [',
            "    {",
            '      "day": 1,',
            '      "date": "2026-02-01",',
            '      "postType": "photo",',
            '      "theme": "Welcome February",',
            '      "captionShort": "Short engaging caption under 100 chars",',
            '      "captionLong": "Longer caption with story/detail 150-250 chars",',
            f'      "hashtags": ["#localbusiness", "{type_tag}"],',
            '      "cta": "Visit us this weekend!",',
            '      "canvaPrompt": "Create a vibrant photo collage with...",',
            '      "imageIdeas": "Behind counter shot, product close-up",',
            '      "suggestedProduct": "Exact menu item name featured in this post"',
            "    }",
            "  ]",
            "}",
            "postType must be one of: photo, reel, carousel, story.",
            "Only include suggestedProduct when the post features one specific menu item; "
            "use the item name exactly as listed.",
        ]
    )


def _as_tuple(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)

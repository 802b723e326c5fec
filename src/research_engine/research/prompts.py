"""LLM prompts for the research pipelines."""

PLANNING_SYSTEM_PROMPT = """You are a research planning assistant. Your task is to break a research query into effective web search terms.

Rules:
- Generate terms that are specific and likely to return relevant results
- Cover different aspects of the query (definitions, current state, applications, challenges, etc.)
- Avoid overly broad or vague terms
- Each term should focus on one specific aspect

Output format: Return ONLY a JSON array of search term strings, nothing else.
Example: ["term 1", "term 2", "term 3"]"""


def get_planning_prompt(query: str, max_terms: int) -> str:
    """Generate the planning prompt for search term generation."""
    return f"""Research query: "{query}"

Generate {max_terms} specific search terms to thoroughly research this query.
Cover different angles: definitions, current developments, key players, challenges, and future outlook.

Return ONLY a JSON array of {max_terms} search term strings."""


RELEVANCE_SYSTEM_PROMPT = """You are a content relevance analyzer. Your task is to determine if given content is relevant to a specific research query.

Evaluation criteria:
- Does the content directly address the research topic?
- Does it provide useful information or insights?
- Does it help answer the research question?

Respond with only 'true' if the content is relevant, or 'false' if it's not relevant."""


def get_relevance_prompt(query: str, content: str) -> str:
    """Generate the relevance check prompt."""
    return f"""Research Query: {query}

Content to Evaluate:
{content}

Relevance Assessment:"""


KEY_POINTS_SYSTEM_PROMPT = """You are an expert at extracting key information from text. Your task is to identify the most important points in the given content.

Instructions:
- Focus on factual information and key insights
- Ignore fluff, advertisements, and irrelevant details
- Present each point clearly and concisely
- Number each point for easy reference

Return the key points as a numbered list."""


def get_key_points_prompt(content: str) -> str:
    """Generate the key point extraction prompt."""
    return f"""Content to Analyze:
{content}

Key Points:"""


SYNTHESIS_SYSTEM_PROMPT = (
    "You are a professional research analyst. "
    "Your task is to synthesize research findings into a comprehensive, well-structured summary.\n\n"
    "Guidelines:\n"
    "- Identify the key themes and patterns\n"
    "- Highlight the most important insights\n"
    "- Note any contradictions or gaps in the information\n"
    "- Draw conclusions and suggest practical next steps\n"
    "- Use markdown formatting for readability\n"
    "- Be objective and analytical"
)


def get_synthesis_prompt(findings: list[str]) -> str:
    """Generate the synthesis prompt for a list of findings."""
    findings_text = "\n".join(f"{i + 1}. {finding}" for i, finding in enumerate(findings))

    return f"""Research Findings:
{findings_text}

Comprehensive Synthesis:"""


SEARCH_OPTIMIZER_SYSTEM_PROMPT = """You are a search query optimization expert. Take a research question and generate effective search queries.

Generate 3-5 different search queries that:
- Use different keyword combinations
- Target different aspects of the topic
- Include both broad and specific terms

Return each query on a separate line."""


def get_search_optimizer_prompt(query: str) -> str:
    """Generate the search query optimization prompt."""
    return f"""Original Query: {query}

Optimized Search Queries:"""


CREDIBILITY_SYSTEM_PROMPT = """You are a source credibility analyst. Evaluate the reliability and trustworthiness of information sources.

Consider author expertise, publication reputation, recency, citations, potential bias and factual consistency.

Provide a credibility score from 1-10 (formatted as "Score: N/10") and brief reasoning."""


def get_credibility_prompt(url: str, title: str, content: str) -> str:
    """Generate the source credibility prompt."""
    return f"""Source URL: {url}
Title: {title}
Content Sample: {content[:500]}...

Credibility Assessment:"""

"""
Prompt templates for question answering.

Templates use two literal placeholders, ``{context}`` and ``{question}``.
Substitution is literal, so any other braces in a chatbot owner's custom
prompt are kept as written.
"""

import re

DEFAULT_PROMPT_TEMPLATE = """You are a friendly and helpful assistant. Be conversational and engaging in your responses.
Use the following pieces of context to answer the user's question.
If you don't know the answer, just say that you don't know, but maintain a friendly tone.
Make sure you only talk about this company. If user asks you something different, tell him, that you are only for answering questions about this company.
Context: {context}
Question: {question}
Please provide a friendly and helpful response:"""

# Returned without calling the model when retrieval finds nothing
INSUFFICIENT_KNOWLEDGE_ANSWER = (
    "I'm sorry, I couldn't find anything about that in my knowledge base. "
    "Could you rephrase your question or ask about something covered by "
    "this chatbot's content?"
)

CONTEXT_PLACEHOLDER = "{context}"
QUESTION_PLACEHOLDER = "{question}"

_PLACEHOLDER_PATTERN = re.compile(r"\{(context|question)\}")


def ensure_placeholders(template: str) -> str:
    """
    Append whichever placeholder lines the template is missing.

    Example:
        >>> ensure_placeholders("Be brief.")
        'Be brief.\\nContext: {context}\\nQuestion: {question}'
    """
    if CONTEXT_PLACEHOLDER not in template:
        template += f"\nContext: {CONTEXT_PLACEHOLDER}"
    if QUESTION_PLACEHOLDER not in template:
        template += f"\nQuestion: {QUESTION_PLACEHOLDER}"
    return template


def render_prompt(template: str, context: str, question: str) -> str:
    """
    Fill the placeholders of a template in one pass.

    Placeholder-like text inside the substituted context or question is
    not expanded again.
    """
    values = {"context": context, "question": question}
    return _PLACEHOLDER_PATTERN.sub(lambda m: values[m.group(1)], template)


# Rewrites a follow-up into a question that can be searched on its own
CONDENSE_QUESTION_TEMPLATE = """Given the following conversation and a follow up question, rephrase the follow up question to be a standalone question, in its original language.

Chat History:
{chat_history}
Follow Up Input: {question}
Standalone question:"""

_CONDENSE_PATTERN = re.compile(r"\{(chat_history|question)\}")


def render_condense_prompt(chat_history: str, question: str) -> str:
    """Fill the condense template in one pass."""
    values = {"chat_history": chat_history, "question": question}
    return _CONDENSE_PATTERN.sub(lambda m: values[m.group(1)], CONDENSE_QUESTION_TEMPLATE)

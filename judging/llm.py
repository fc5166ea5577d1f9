"""
LLM plumbing shared by the answer judge and the skill identifier.

Every call is bounded by LLM_TIMEOUT_SECONDS with no automatic retries;
failures are translated into the core's ExternalService errors.
"""

import json
from typing import List

import openai
from langchain_core.messages import BaseMessage
from langchain_openai import ChatOpenAI

import config
from learning.errors import ExternalServiceError, ExternalServiceTimeout


def build_chat_model(temperature: float = 0.3) -> ChatOpenAI:
    return ChatOpenAI(
        model=config.OPENAI_MODEL,
        temperature=temperature,
        timeout=config.LLM_TIMEOUT_SECONDS,
        max_retries=0,
    )


def invoke_json(llm, messages: List[BaseMessage]) -> dict:
    """
    Invoke a chat model and parse its reply as a JSON object.

    Raises:
        ExternalServiceTimeout: the call hit its timeout
        ExternalServiceError: any other failure, including unparseable output
    """
    try:
        response = llm.invoke(messages)
    except (openai.APITimeoutError, TimeoutError) as e:
        raise ExternalServiceTimeout(f"LLM call timed out: {e}") from e
    except Exception as e:
        raise ExternalServiceError(f"LLM call failed: {e}") from e

    content = getattr(response, "content", None)
    if not content:
        raise ExternalServiceError("Empty response from LLM")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ExternalServiceError(f"LLM returned invalid JSON: {content[:200]}") from e

    if not isinstance(data, dict):
        raise ExternalServiceError("LLM returned JSON that is not an object")
    return data

"""提示词模板加载工具。

按语言(locale) 从 prompts/<locale> 目录读取模板文本，模板使用 str.format 占位符。
目前包含 RAG 场景的两个模板：

- rag_with_context: 检索到上下文时使用，占位符 {context}、{query}。
- rag_without_context: 未检索到上下文时使用，占位符 {query}。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt_template(name: str, locale: str = "en") -> str:
    """加载模板文本，去掉文件末尾的换行。"""

    fname = PROMPTS_DIR / locale / f"{name}.txt"
    return fname.read_text(encoding="utf-8").rstrip("\n")


def build_rag_prompt(query: str, context: str = "") -> str:
    """根据是否有上下文选择模板并填充。"""

    if context:
        return load_prompt_template("rag_with_context").format(context=context, query=query)
    return load_prompt_template("rag_without_context").format(query=query)

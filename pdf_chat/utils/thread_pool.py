import asyncio
from concurrent.futures import ThreadPoolExecutor

IO_POOL_VAL = ThreadPoolExecutor(max_workers=8)


def run_sync(func, *args, **kwargs):
    """
    Run blocking / CPU-heavy / IO-heavy code off the current event loop.
    Used for:
    - PDF loading and text splitting
    - FAISS load / build / search
    - Embedding and LLM calls (LangChain sync clients)
    - Local file and HTTP reads of stored documents
    """
    loop = asyncio.get_running_loop()
    return loop.run_in_executor(IO_POOL_VAL, lambda: func(*args, **kwargs))

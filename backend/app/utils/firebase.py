import asyncio
from functools import partial


async def firestore_run(fn, *args, **kwargs):
    """
    Run blocking Firestore SDK calls in the default executor.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args, **kwargs))


async def firestore_commit(fn, *args, **kwargs):
    """
    Like firestore_run, but the write keeps going if the awaiting request is
    cancelled (client disconnect). A validated payment must still be recorded.
    """
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, partial(fn, *args, **kwargs))
    return await asyncio.shield(future)

import asyncio


# Run blocking calls (disk cache I/O) off the event loop
async def run_in_threadpool(thread_pool, func, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(thread_pool, lambda: func(*args, **kwargs))

"""Tests for the schema cache."""

import asyncio
import os

import pytest

from mdtdecode.loader import CodecOptions, ImportNotFoundError, SchemaCache


class CountingLoader:
    """Loader stub recording each call and returning a fresh package."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def __call__(self, filename, options, include_dirs):
        self.calls.append((filename, options, include_dirs))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return {"filename": filename}


def describe_schema_cache():
    def loads_once_for_concurrent_callers(expect):
        loader = CountingLoader()
        cache = SchemaCache(loader)

        async def run():
            return await asyncio.gather(*(cache.get("schemas/a.proto") for _ in range(20)))

        results = asyncio.run(run())
        expect(len(loader.calls)) == 1
        expect(all(result is results[0] for result in results)) == True

    def reuses_a_completed_load(expect):
        loader = CountingLoader()
        cache = SchemaCache(loader)

        async def run():
            first = await cache.get("a.proto")
            second = await cache.get("a.proto")
            return first, second

        first, second = asyncio.run(run())
        expect(first is second) == True
        expect(len(loader.calls)) == 1

    def normalizes_paths(expect):
        loader = CountingLoader()
        cache = SchemaCache(loader)

        async def run():
            await cache.get("schemas/./a.proto")
            await cache.get("schemas/sub/../a.proto")

        asyncio.run(run())
        expect(len(loader.calls)) == 1
        expect(loader.calls[0][0]) == os.path.normpath("schemas/a.proto")
        expect("schemas/a.proto" in cache) == True

    def keys_on_options_and_include_dirs(expect):
        loader = CountingLoader()
        cache = SchemaCache(loader)

        async def run():
            await cache.get("a.proto")
            await cache.get("a.proto", CodecOptions(keep_case=True))
            await cache.get("a.proto", include_dirs=["protos"])
            await cache.get("a.proto", CodecOptions())

        asyncio.run(run())
        expect(len(loader.calls)) == 3
        expect(len(cache)) == 3

    def caches_failures_for_every_waiter(expect):
        error = ImportNotFoundError("missing.proto", ())
        loader = CountingLoader(error)
        cache = SchemaCache(loader)

        async def run():
            results = await asyncio.gather(
                *(cache.get("bad.proto") for _ in range(5)), return_exceptions=True
            )
            with pytest.raises(ImportNotFoundError):
                await cache.get("bad.proto")
            return results

        results = asyncio.run(run())
        expect(all(result is error for result in results)) == True
        expect(len(loader.calls)) == 1

    def does_not_cancel_the_shared_load_with_a_waiter(expect):
        loader = CountingLoader()
        cache = SchemaCache(loader)

        async def run():
            waiter = asyncio.ensure_future(cache.get("a.proto"))
            await asyncio.sleep(0)
            waiter.cancel()
            return await cache.get("a.proto")

        expect(asyncio.run(run())) == {"filename": "a.proto"}
        expect(len(loader.calls)) == 1

    def loads_real_schemas(expect, fixtures_dir, include_dirs):
        cache = SchemaCache()
        path = os.path.join(fixtures_dir, "inventory.proto")

        async def run():
            return await asyncio.gather(
                cache.get(path, include_dirs=include_dirs),
                cache.get(path, include_dirs=include_dirs),
            )

        first, second = asyncio.run(run())
        expect(first is second) == True
        expect("demo.inventory.Item" in first) == True

import asyncio

from lms_service.errors import ConflictError
from manager.batch import UNEXPECTED_ERROR, BatchRunner


def test_batch_captures_each_item_independently():
    async def work(item):
        if item == 2:
            raise ConflictError("Already enrolled")
        if item == 3:
            raise RuntimeError("boom")
        return item * 10

    batch = asyncio.run(BatchRunner("demo").run([1, 2, 3, 4], work))

    assert [item.success for item in batch.items] == [True, False, False, True]
    assert batch.items[0].result == 10
    assert batch.items[1].error == "Already enrolled"
    assert batch.items[2].error == UNEXPECTED_ERROR
    assert batch.summary() == {"total": 4, "succeeded": 2, "failed": 2}


def test_batch_serialises_discriminated_items():
    async def work(item):
        return {"id": item["id"]}

    batch = asyncio.run(BatchRunner("demo").run([{"id": 7}], work, key=lambda item: item["id"]))
    assert batch.to_dict()["results"] == [{"key": 7, "success": True, "result": {"id": 7}}]

import asyncio

from trackling import Client, ClientConfig, Identify, Page, Track, setup_logging


async def main() -> None:
    """Identify a user, record a few events and flush them in one batch."""
    config = ClientConfig.from_env()
    async with Client.from_config(config) as client:
        await client.send(Identify(user_id="user-42", traits={"plan": "pro"}))
        await client.send(Page(user_id="user-42", name="Pricing", category="Marketing"))
        for index in range(3):
            await client.send(
                Track(user_id="user-42", event="Report Exported", properties={"index": index})
            )

        outcome = await client.flush()
        if outcome is not None:
            print(f"{len(outcome.batch)} messages: {outcome.status.value}")
            outcome.raise_for_outcome()


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())

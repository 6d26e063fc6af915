"""Run the API with uvicorn: ``python -m direct_chat``."""

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "direct_chat.api.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3001")),
    )


if __name__ == "__main__":
    main()

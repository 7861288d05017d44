from __future__ import annotations

import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "muzee.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_config=None,
    )


if __name__ == "__main__":
    main()

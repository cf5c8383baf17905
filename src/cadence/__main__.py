"""Run the API server: python -m cadence."""

import uvicorn


def main() -> None:
    uvicorn.run("cadence.main:app", host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    main()

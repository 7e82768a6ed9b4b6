# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_routing

import os

import uvicorn

from coreason_routing.server import app


def main() -> None:
    uvicorn.run(
        app,
        host=os.environ.get("COREASON_ROUTING_HOST", "0.0.0.0"),
        port=int(os.environ.get("COREASON_ROUTING_PORT", "8000")),
    )


if __name__ == "__main__":
    main()

# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

import sys

from snapvault.integrations.cli import main

sys.exit(main())

# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

from package_installer.cli import main

if __name__ == "__main__":
    raise SystemExit(main())

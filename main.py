#!/usr/bin/env python3
"""
Main entry point for Redeem Player.

This script serves as the entry point when running the application directly.
It imports and runs the main function from the redeemplayer package.
"""

if __name__ == "__main__":
    from src.redeemplayer import main
    main()

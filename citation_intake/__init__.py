"""Form session engine for Non-Traffic Citation applications."""

"""Report generation: aggregate capture files into text and HTML reports."""

"""Static informational page served at ``/`` and ``/index.html``."""

from __future__ import annotations

from html import escape

from .routing.table import RouteTable

_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <title>API Proxy Service</title>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            max-width: 1200px;
            margin: 0 auto;
            padding: 20px;
            line-height: 1.6;
            background: #f5f5f5;
        }}
        .container {{
            background: white;
            border-radius: 8px;
            padding: 30px;
            box-shadow: 0 2px 10px rgba(0,0,0,0.1);
        }}
        h1 {{
            color: #333;
            border-bottom: 2px solid #007acc;
            padding-bottom: 10px;
            margin-top: 0;
        }}
        ul {{
            list-style-type: none;
            padding: 0;
            display: grid;
            grid-template-columns: repeat(auto-fill, minmax(300px, 1fr));
            gap: 10px;
        }}
        li {{
            padding: 15px;
            background: #f8f9fa;
            border-radius: 5px;
            border-left: 4px solid #007acc;
        }}
        a {{
            text-decoration: none;
            color: #007acc;
            font-weight: bold;
        }}
        .url {{
            color: #666;
            font-size: 0.9em;
            display: block;
            margin-top: 5px;
        }}
        footer {{
            margin-top: 30px;
            text-align: center;
            color: #666;
            font-size: 0.9em;
        }}
        @media (max-width: 768px) {{
            ul {{
                grid-template-columns: 1fr;
            }}
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>API Proxy Service</h1>
        <p>Available API endpoints:</p>
        <ul>
            {links}
        </ul>
        <footer>
            <p><small>Service is running. Built with FastAPI &amp; httpx.</small></p>
        </footer>
    </div>
</body>
</html>"""


def render_landing_page(route_table: RouteTable) -> str:
    """Render the endpoint listing for every route, in table order."""
    links = "\n            ".join(
        '<li><a href="{prefix}">{prefix}</a><span class="url">{base}</span></li>'.format(
            prefix=escape(entry.prefix, quote=True),
            base=escape(entry.target_base),
        )
        for entry in route_table
    )
    return _PAGE_TEMPLATE.format(links=links)

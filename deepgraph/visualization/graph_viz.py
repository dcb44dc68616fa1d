"""Per-iteration HTML visualization of the concept graph."""

import html
import json
from pathlib import Path

from deepgraph.analysis.concept_store import IterationSnapshot


def _graph_payload(snapshot: IterationSnapshot) -> dict:
    degree: dict[str, int] = {c.id: 0 for c in snapshot.concepts}
    for r in snapshot.relationships:
        if r.source in degree:
            degree[r.source] += 1
        if r.target in degree:
            degree[r.target] += 1
    return {
        "nodes": [
            {"id": c.id, "name": c.name, "description": c.description, "degree": degree[c.id]}
            for c in snapshot.concepts
        ],
        "links": [
            {"source": r.source, "target": r.target, "type": r.type, "description": r.description}
            for r in snapshot.relationships
            if r.source in degree and r.target in degree
        ],
    }


def generate_iteration_visualization(
    snapshot: IterationSnapshot,
    output_dir: Path,
    title: str | None = None,
) -> Path:
    """
    Write an interactive D3 force-layout view of one snapshot.

    Creates ``graph_visualization_iteration_<k>_<timestamp>.html`` with:
    - Stats header (iteration, concept and relationship counts)
    - Draggable, zoomable nodes sized by degree
    - Tooltips showing concept and relationship descriptions
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_path = output_dir / f"graph_visualization_iteration_{snapshot.iteration}_{snapshot.timestamp}.html"

    # Keep "</script>" inside descriptions from closing the data block
    graph_json = json.dumps(_graph_payload(snapshot)).replace("</", "<\\/")
    heading = html.escape(title or "Knowledge Graph")

    html_content = f"""<!DOCTYPE html>
<html>
<head>
    <title>{heading} - Iteration {snapshot.iteration}</title>
    <meta charset="utf-8">
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Inter', sans-serif;
            margin: 0;
            padding: 0;
            background: #0d1117;
            color: #e6edf3;
        }}

        #header {{
            background: linear-gradient(135deg, #1c2128 0%, #2d333b 100%);
            padding: 20px 24px;
            border-bottom: 1px solid #30a14e33;
        }}

        #header h1 {{
            margin: 0 0 6px 0;
            font-size: 22px;
            font-weight: 600;
            color: #30a14e;
        }}

        #stats {{
            font-size: 13px;
            color: #7d8590;
        }}

        #graph-container {{
            width: 100vw;
            height: calc(100vh - 84px);
        }}

        .link {{
            stroke: #8b949e;
            stroke-opacity: 0.6;
        }}

        .link-label {{
            font-size: 9px;
            fill: #8b949e;
            pointer-events: none;
        }}

        .node circle {{
            stroke: #e6edf3;
            stroke-width: 1.5px;
            cursor: pointer;
        }}

        .node text {{
            fill: #e6edf3;
            font-size: 12px;
            pointer-events: none;
        }}

        #tooltip {{
            position: absolute;
            max-width: 320px;
            padding: 10px;
            background: rgba(22, 27, 34, 0.95);
            border: 1px solid #30363d;
            border-radius: 6px;
            font-size: 12px;
            pointer-events: none;
            opacity: 0;
        }}
    </style>
</head>
<body>
    <div id="header">
        <h1>{heading}</h1>
        <div id="stats">Iteration {snapshot.iteration} &middot; {len(snapshot.concepts)} concepts &middot; {len(snapshot.relationships)} relationships &middot; {snapshot.timestamp}</div>
    </div>
    <div id="graph-container"></div>
    <div id="tooltip"></div>

    <script src="https://d3js.org/d3.v7.min.js"></script>
    <script>
        const graph = {graph_json};

        const container = document.getElementById('graph-container');
        const width = container.clientWidth;
        const height = container.clientHeight;

        const svg = d3.select("#graph-container")
            .append("svg")
            .attr("width", width)
            .attr("height", height);

        const g = svg.append("g");

        svg.call(d3.zoom()
            .scaleExtent([0.1, 10])
            .on("zoom", (event) => {{
                g.attr("transform", event.transform);
            }}));

        svg.append("defs").append("marker")
            .attr("id", "arrow")
            .attr("viewBox", "0 -5 10 10")
            .attr("refX", 22)
            .attr("refY", 0)
            .attr("markerWidth", 6)
            .attr("markerHeight", 6)
            .attr("orient", "auto")
            .append("path")
            .attr("d", "M0,-5L10,0L0,5")
            .attr("fill", "#8b949e");

        const color = d3.scaleOrdinal(d3.schemeTableau10);

        const simulation = d3.forceSimulation(graph.nodes)
            .force("link", d3.forceLink(graph.links).id(d => d.id).distance(140))
            .force("charge", d3.forceManyBody().strength(-500))
            .force("center", d3.forceCenter(width / 2, height / 2))
            .force("collision", d3.forceCollide().radius(40));

        const link = g.append("g")
            .selectAll("line")
            .data(graph.links)
            .enter().append("line")
            .attr("class", "link")
            .attr("stroke-width", 1.5)
            .attr("marker-end", "url(#arrow)");

        const linkLabel = g.append("g")
            .selectAll("text")
            .data(graph.links)
            .enter().append("text")
            .attr("class", "link-label")
            .attr("text-anchor", "middle")
            .text(d => d.type);

        const node = g.append("g")
            .selectAll(".node")
            .data(graph.nodes)
            .enter().append("g")
            .attr("class", "node")
            .call(d3.drag()
                .on("start", dragstarted)
                .on("drag", dragged)
                .on("end", dragended));

        node.append("circle")
            .attr("r", d => 8 + Math.sqrt(d.degree) * 4)
            .attr("fill", d => color(d.degree));

        node.append("text")
            .attr("dx", 14)
            .attr("dy", 4)
            .text(d => d.name.length > 30 ? d.name.substring(0, 30) + "..." : d.name);

        const tooltip = d3.select("#tooltip");

        function showTooltip(event, html) {{
            tooltip.html(html)
                .style("left", (event.pageX + 12) + "px")
                .style("top", (event.pageY - 12) + "px")
                .transition().duration(150).style("opacity", 0.95);
        }}

        function hideTooltip() {{
            tooltip.transition().duration(300).style("opacity", 0);
        }}

        function escapeHtml(text) {{
            const div = document.createElement('div');
            div.textContent = text || '';
            return div.innerHTML;
        }}

        node.on("mouseover", (event, d) => showTooltip(event,
                `<strong>${{escapeHtml(d.name)}}</strong><br/>${{escapeHtml(d.description)}}`))
            .on("mouseout", hideTooltip);

        link.on("mouseover", (event, d) => showTooltip(event,
                `<strong>${{escapeHtml(d.source.name)}} ${{escapeHtml(d.type)}} ${{escapeHtml(d.target.name)}}</strong>` +
                `<br/>${{escapeHtml(d.description)}}`))
            .on("mouseout", hideTooltip);

        simulation.on("tick", () => {{
            link
                .attr("x1", d => d.source.x)
                .attr("y1", d => d.source.y)
                .attr("x2", d => d.target.x)
                .attr("y2", d => d.target.y);
            linkLabel
                .attr("x", d => (d.source.x + d.target.x) / 2)
                .attr("y", d => (d.source.y + d.target.y) / 2);
            node.attr("transform", d => `translate(${{d.x}},${{d.y}})`);
        }});

        function dragstarted(event, d) {{
            if (!event.active) simulation.alphaTarget(0.3).restart();
            d.fx = d.x;
            d.fy = d.y;
        }}

        function dragged(event, d) {{
            d.fx = event.x;
            d.fy = event.y;
        }}

        function dragended(event, d) {{
            if (!event.active) simulation.alphaTarget(0);
            d.fx = null;
            d.fy = null;
        }}
    </script>
</body>
</html>
"""

    with open(output_path, "w") as f:
        f.write(html_content)

    return output_path

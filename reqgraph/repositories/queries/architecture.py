"""Cypher for architecture diagrams, block placements and connectors."""

from reqgraph.repositories.queries.hierarchy import PROJECT_MATCH, UPSERT_SCOPE

DIAGRAM_MATCH = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_DIAGRAM]->(diagram:ArchitectureDiagram {id: $diagramId})
"""

# Diagrams

CREATE_DIAGRAM = UPSERT_SCOPE + """
CREATE (diagram:ArchitectureDiagram)
SET diagram = $properties
MERGE (project)-[:HAS_ARCHITECTURE_DIAGRAM]->(diagram)
RETURN diagram
"""

LIST_DIAGRAMS = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_DIAGRAM]->(diagram:ArchitectureDiagram)
RETURN diagram
ORDER BY diagram.createdAt
"""

GET_DIAGRAM = DIAGRAM_MATCH + """
RETURN diagram
"""

UPDATE_DIAGRAM = DIAGRAM_MATCH + """
SET {assignments}, diagram.updatedAt = $now
RETURN diagram
"""

# Placement edges go with the diagram; block definitions stay in the library.
DELETE_DIAGRAM = DIAGRAM_MATCH + """
OPTIONAL MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector)
DETACH DELETE connector
WITH DISTINCT diagram
DETACH DELETE diagram
"""

# Blocks

_BLOCK_DOCUMENTS = """
OPTIONAL MATCH (block)-[:LINKED_DOCUMENT]->(document:Document)
"""

PLACE_EXISTING_BLOCK = DIAGRAM_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock {id: $blockId})
MERGE (diagram)-[rel:HAS_BLOCK]->(block)
SET rel += $placement,
    rel.diagramId = $diagramId,
    rel.updatedAt = $now,
    rel.createdAt = coalesce(rel.createdAt, $now)
WITH block, rel
""" + _BLOCK_DOCUMENTS + """
RETURN block, properties(rel) AS placement, collect(DISTINCT document.id) AS documentIds
"""

CREATE_BLOCK = DIAGRAM_MATCH + """
CREATE (block:ArchitectureBlock)
SET block = $properties
MERGE (project)-[:HAS_ARCHITECTURE_BLOCK]->(block)
CREATE (diagram)-[rel:HAS_BLOCK]->(block)
SET rel = $placement, rel.diagramId = $diagramId, rel.createdAt = $now, rel.updatedAt = $now
RETURN block, properties(rel) AS placement
"""

# Document links are definition-scoped and replaced wholesale.
RELINK_BLOCK_DOCUMENTS = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock {id: $blockId})
OPTIONAL MATCH (block)-[existing:LINKED_DOCUMENT]->(:Document)
DELETE existing
WITH DISTINCT project, block
CALL {
  WITH project, block
  UNWIND $documentIds AS documentId
  MATCH (project)-[:HAS_DOCUMENT]->(document:Document {id: documentId})
  MERGE (block)-[:LINKED_DOCUMENT]->(document)
  RETURN collect(document.id) AS documentIds
}
RETURN block, documentIds
"""

LIST_BLOCKS = DIAGRAM_MATCH + """
MATCH (diagram)-[rel:HAS_BLOCK]->(block:ArchitectureBlock)
""" + _BLOCK_DOCUMENTS + """
WITH block, rel, collect(DISTINCT document.id) AS documentIds
RETURN block, properties(rel) AS placement, documentIds
ORDER BY rel.createdAt, block.createdAt
SKIP $offset
LIMIT $limit
"""

GET_PLACED_BLOCK = DIAGRAM_MATCH + """
MATCH (diagram)-[rel:HAS_BLOCK]->(block:ArchitectureBlock {id: $blockId})
""" + _BLOCK_DOCUMENTS + """
RETURN block, properties(rel) AS placement, collect(DISTINCT document.id) AS documentIds
"""

GET_BLOCK_DEFINITION = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock {id: $blockId})
""" + _BLOCK_DOCUMENTS + """
RETURN block, collect(DISTINCT document.id) AS documentIds
"""

BLOCK_LIBRARY = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock)
OPTIONAL MATCH (diagram:ArchitectureDiagram)-[:HAS_BLOCK]->(block)
WITH block, collect(DISTINCT {id: diagram.id, name: diagram.name}) AS diagrams
""" + _BLOCK_DOCUMENTS + """
RETURN block, [d IN diagrams WHERE d.id IS NOT NULL] AS diagrams, collect(DISTINCT document.id) AS documentIds
ORDER BY block.name
"""

UPDATE_BLOCK_DEFINITION = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock {id: $blockId})
SET {assignments}, block.updatedAt = $now
RETURN block
"""

# Connectors anywhere in the project still attached to a port the block no longer has.
DELETE_STALE_PORT_CONNECTORS = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_DIAGRAM]->(diagram:ArchitectureDiagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector)
WHERE (connector.source = $blockId AND connector.sourcePortId IS NOT NULL AND NOT connector.sourcePortId IN $portIds)
   OR (connector.target = $blockId AND connector.targetPortId IS NOT NULL AND NOT connector.targetPortId IN $portIds)
WITH connector, diagram.id AS diagramId
DETACH DELETE connector
RETURN diagramId, count(*) AS removed
"""

UPDATE_BLOCK_PLACEMENT = DIAGRAM_MATCH + """
MATCH (diagram)-[rel:HAS_BLOCK]->(block:ArchitectureBlock {id: $blockId})
SET rel += $placement, rel.updatedAt = $now
RETURN properties(rel) AS placement
"""

DELETE_BLOCK_PLACEMENT = DIAGRAM_MATCH + """
MATCH (diagram)-[rel:HAS_BLOCK]->(block:ArchitectureBlock {id: $blockId})
OPTIONAL MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector)
WHERE connector.source = $blockId OR connector.target = $blockId
DETACH DELETE connector
WITH DISTINCT rel
DELETE rel
"""

DELETE_BLOCK = PROJECT_MATCH + """
MATCH (project)-[:HAS_ARCHITECTURE_BLOCK]->(block:ArchitectureBlock {id: $blockId})
OPTIONAL MATCH (project)-[:HAS_ARCHITECTURE_DIAGRAM]->(:ArchitectureDiagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector)
WHERE connector.source = $blockId OR connector.target = $blockId
DETACH DELETE connector
WITH DISTINCT block
DETACH DELETE block
"""

# Connectors

# Endpoint validation: which of the requested blocks are placed on the diagram,
# with their ports, and whether an identical connector already exists.
CONNECTOR_CONTEXT = DIAGRAM_MATCH + """
OPTIONAL MATCH (diagram)-[:HAS_BLOCK]->(block:ArchitectureBlock)
WHERE block.id IN [$source, $target]
WITH diagram, collect(DISTINCT {id: block.id, ports: block.ports}) AS blocks
OPTIONAL MATCH (diagram)-[:HAS_CONNECTOR]->(existing:ArchitectureConnector {source: $source, target: $target, kind: $kind})
WHERE coalesce(existing.sourcePortId, '') = coalesce($sourcePortId, '')
  AND coalesce(existing.targetPortId, '') = coalesce($targetPortId, '')
  AND ($excludeId IS NULL OR existing.id <> $excludeId)
RETURN [b IN blocks WHERE b.id IS NOT NULL] AS blocks, count(existing) AS duplicates
"""

CREATE_CONNECTOR = DIAGRAM_MATCH + """
CREATE (connector:ArchitectureConnector)
SET connector = $properties
MERGE (diagram)-[:HAS_CONNECTOR]->(connector)
RETURN connector
"""

LIST_CONNECTORS = DIAGRAM_MATCH + """
MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector)
RETURN connector
ORDER BY connector.createdAt
SKIP $offset
LIMIT $limit
"""

GET_CONNECTOR = DIAGRAM_MATCH + """
MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector {id: $connectorId})
RETURN connector
"""

UPDATE_CONNECTOR = DIAGRAM_MATCH + """
MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector {id: $connectorId})
SET {assignments}, connector.updatedAt = $now
RETURN connector
"""

DELETE_CONNECTOR = DIAGRAM_MATCH + """
MATCH (diagram)-[:HAS_CONNECTOR]->(connector:ArchitectureConnector {id: $connectorId})
DETACH DELETE connector
"""

# Diagram candidates

CREATE_DIAGRAM_CANDIDATE = UPSERT_SCOPE + """
CREATE (candidate:DiagramCandidate)
SET candidate = $properties
MERGE (project)-[:HAS_DIAGRAM_CANDIDATE]->(candidate)
RETURN candidate
"""

LIST_DIAGRAM_CANDIDATES = PROJECT_MATCH + """
MATCH (project)-[:HAS_DIAGRAM_CANDIDATE]->(candidate:DiagramCandidate)
RETURN candidate
ORDER BY candidate.createdAt DESC
SKIP $offset
LIMIT $limit
"""

GET_DIAGRAM_CANDIDATE = PROJECT_MATCH + """
MATCH (project)-[:HAS_DIAGRAM_CANDIDATE]->(candidate:DiagramCandidate {id: $candidateId})
RETURN candidate
"""

UPDATE_DIAGRAM_CANDIDATE = PROJECT_MATCH + """
MATCH (project)-[:HAS_DIAGRAM_CANDIDATE]->(candidate:DiagramCandidate {id: $candidateId})
SET {assignments}, candidate.updatedAt = $now
RETURN candidate
"""

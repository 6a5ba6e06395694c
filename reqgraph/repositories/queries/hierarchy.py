"""Cypher for tenants, projects, folders, documents and sections."""

PROJECT_MATCH = (
    "MATCH (tenant:Tenant {slug: $tenantSlug})-[:OWNS]->"
    "(project:Project {slug: $projectSlug, tenantSlug: $tenantSlug})"
)

UPSERT_SCOPE = """
MERGE (tenant:Tenant {slug: $tenantSlug})
  ON CREATE SET tenant.name = $tenantName, tenant.createdAt = $now
MERGE (project:Project {slug: $projectSlug, tenantSlug: $tenantSlug})
  ON CREATE SET project.key = $projectKey, project.createdAt = $now,
                project.requirementCounter = 0, project.baselineCounter = 0
MERGE (tenant)-[:OWNS]->(project)
"""

# Tenants and projects

LIST_TENANTS = """
MATCH (tenant:Tenant)
OPTIONAL MATCH (tenant)-[:OWNS]->(project:Project)
RETURN tenant, count(DISTINCT project) AS projectCount
ORDER BY tenant.slug
"""

GET_TENANT = """
MATCH (tenant:Tenant {slug: $tenantSlug})
OPTIONAL MATCH (tenant)-[:OWNS]->(project:Project)
RETURN tenant, count(DISTINCT project) AS projectCount
"""

TENANT_EXISTS = """
OPTIONAL MATCH (tenant:Tenant {slug: $tenantSlug})
RETURN tenant IS NOT NULL AS exists
"""

CREATE_TENANT = """
CREATE (tenant:Tenant {slug: $tenantSlug, name: $name, createdAt: $now})
RETURN tenant
"""

UPSERT_TENANT = """
MERGE (tenant:Tenant {slug: $tenantSlug})
  ON CREATE SET tenant.name = $name, tenant.createdAt = $now
RETURN tenant
"""

DELETE_TENANT = """
MATCH (tenant:Tenant {slug: $tenantSlug})
CALL {
  WITH tenant
  MATCH (scoped) WHERE scoped.tenant = tenant.slug
  DETACH DELETE scoped
}
CALL {
  WITH tenant
  MATCH (project:Project {tenantSlug: tenant.slug})
  DETACH DELETE project
}
DETACH DELETE tenant
"""

LIST_PROJECTS = """
MATCH (tenant:Tenant {slug: $tenantSlug})-[:OWNS]->(project:Project)
OPTIONAL MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: project.slug})
WHERE coalesce(requirement.deleted, false) = false
RETURN project, count(DISTINCT requirement) AS requirementCount
ORDER BY project.slug
"""

GET_PROJECT = PROJECT_MATCH + """
OPTIONAL MATCH (requirement:Requirement {tenant: $tenantSlug, projectKey: $projectSlug})
WHERE coalesce(requirement.deleted, false) = false
RETURN project, count(DISTINCT requirement) AS requirementCount
"""

PROJECT_EXISTS = """
OPTIONAL MATCH (project:Project {slug: $projectSlug, tenantSlug: $tenantSlug})
RETURN project IS NOT NULL AS exists
"""

CREATE_PROJECT = """
MATCH (tenant:Tenant {slug: $tenantSlug})
CREATE (project:Project {
  slug: $projectSlug,
  tenantSlug: $tenantSlug,
  key: $projectKey,
  createdAt: $now,
  requirementCounter: 0,
  baselineCounter: 0
})
MERGE (tenant)-[:OWNS]->(project)
RETURN project
"""

UPSERT_PROJECT = UPSERT_SCOPE + """
RETURN project
"""

DELETE_PROJECT = """
MATCH (project:Project {slug: $projectSlug, tenantSlug: $tenantSlug})
CALL {
  WITH project
  MATCH (scoped) WHERE scoped.tenant = project.tenantSlug AND scoped.projectKey = project.slug
  DETACH DELETE scoped
}
DETACH DELETE project
"""

# Documents

DOCUMENT_EXISTS = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $slug})
RETURN document IS NOT NULL AS exists
"""

CREATE_DOCUMENT = UPSERT_SCOPE + """
WITH project
OPTIONAL MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $parentFolder})
WHERE folder.deletedAt IS NULL
WITH project, folder
WHERE $parentFolder IS NULL OR folder IS NOT NULL
CREATE (document:Document)
SET document = $properties
MERGE (project)-[:HAS_DOCUMENT]->(document)
FOREACH (parent IN CASE WHEN folder IS NOT NULL THEN [folder] ELSE [] END |
  MERGE (parent)-[:CONTAINS_DOCUMENT]->(document)
)
RETURN document
"""

LIST_DOCUMENTS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document)
WHERE document.deletedAt IS NULL
OPTIONAL MATCH (document)-[:CONTAINS]->(requirement:Requirement)
WHERE coalesce(requirement.deleted, false) = false
RETURN document, count(requirement) AS requirementCount
ORDER BY document.name
SKIP $offset
LIMIT $limit
"""

GET_DOCUMENT = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
OPTIONAL MATCH (document)-[:CONTAINS]->(requirement:Requirement)
WHERE coalesce(requirement.deleted, false) = false
RETURN document, count(requirement) AS requirementCount
"""

UPDATE_DOCUMENT = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
SET {assignments}, document.updatedAt = $now
RETURN document
"""

DETACH_DOCUMENT_FROM_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
OPTIONAL MATCH (:Folder)-[contains:CONTAINS_DOCUMENT]->(document)
OPTIONAL MATCH (document)-[legacy:IN_FOLDER]->(:Folder)
DELETE contains, legacy
RETURN DISTINCT document
"""

ATTACH_DOCUMENT_TO_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $parentFolder})
WHERE folder.deletedAt IS NULL
MERGE (folder)-[:CONTAINS_DOCUMENT]->(document)
SET document.parentFolder = folder.slug, document.updatedAt = $now
RETURN document
"""

CLEAR_DOCUMENT_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
SET document.parentFolder = null, document.updatedAt = $now
RETURN document
"""

SOFT_DELETE_DOCUMENT = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
WHERE document.deletedAt IS NULL
SET document.deletedAt = $now, document.updatedAt = $now
RETURN document
"""

# Folders

FOLDER_EXISTS = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $slug})
RETURN folder IS NOT NULL AS exists
"""

CREATE_FOLDER = UPSERT_SCOPE + """
WITH project
OPTIONAL MATCH (project)-[:HAS_FOLDER]->(parent:Folder {slug: $parentFolder})
WHERE parent.deletedAt IS NULL
WITH project, parent
WHERE $parentFolder IS NULL OR parent IS NOT NULL
CREATE (folder:Folder)
SET folder = $properties
MERGE (project)-[:HAS_FOLDER]->(folder)
FOREACH (p IN CASE WHEN parent IS NOT NULL THEN [parent] ELSE [] END |
  MERGE (p)-[:CONTAINS_FOLDER]->(folder)
)
RETURN folder
"""

_FOLDER_COUNTS = """
OPTIONAL MATCH (folder)-[:CONTAINS_DOCUMENT]->(document:Document)
WHERE document.deletedAt IS NULL
WITH folder, count(DISTINCT document) AS documentCount
OPTIONAL MATCH (folder)-[:CONTAINS_FOLDER]->(subFolder:Folder)
WHERE subFolder.deletedAt IS NULL
WITH folder, documentCount, count(DISTINCT subFolder) AS folderCount
"""

LIST_FOLDERS = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder)
WHERE folder.deletedAt IS NULL
""" + _FOLDER_COUNTS + """
RETURN folder, documentCount, folderCount
ORDER BY folder.name
SKIP $offset
LIMIT $limit
"""

GET_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $folderSlug})
""" + _FOLDER_COUNTS + """
RETURN folder, documentCount, folderCount
"""

UPDATE_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $folderSlug})
SET {assignments}, folder.updatedAt = $now
WITH folder
""" + _FOLDER_COUNTS + """
RETURN folder, documentCount, folderCount
"""

# Ancestors of the proposed parent, the parent included, so a move can be
# rejected when the moved folder is among them.
FOLDER_ANCESTRY = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $folderSlug})
OPTIONAL MATCH (project)-[:HAS_FOLDER]->(parent:Folder {slug: $parentFolder})
OPTIONAL MATCH (ancestor:Folder)-[:CONTAINS_FOLDER*0..]->(parent)
RETURN folder, parent, collect(DISTINCT ancestor.slug) AS ancestors
"""

MOVE_FOLDER = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $folderSlug})
OPTIONAL MATCH (:Folder)-[old:CONTAINS_FOLDER]->(folder)
DELETE old
WITH DISTINCT project, folder
OPTIONAL MATCH (project)-[:HAS_FOLDER]->(parent:Folder {slug: $parentFolder})
FOREACH (p IN CASE WHEN parent IS NOT NULL THEN [parent] ELSE [] END |
  MERGE (p)-[:CONTAINS_FOLDER]->(folder)
)
SET folder.parentFolder = parent.slug, folder.updatedAt = $now
WITH folder
""" + _FOLDER_COUNTS + """
RETURN folder, documentCount, folderCount
"""

FOLDER_SUBTREE = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder {slug: $folderSlug})
WHERE folder.deletedAt IS NULL
OPTIONAL MATCH (folder)-[:CONTAINS_FOLDER*0..]->(descendant:Folder)
WHERE descendant.deletedAt IS NULL
OPTIONAL MATCH (descendant)-[:CONTAINS_DOCUMENT]->(document:Document)
WHERE document.deletedAt IS NULL
RETURN folder,
       [slug IN collect(DISTINCT descendant.slug) WHERE slug <> folder.slug] AS folderSlugs,
       collect(DISTINCT document.slug) AS documentSlugs
"""

SOFT_DELETE_FOLDERS = PROJECT_MATCH + """
MATCH (project)-[:HAS_FOLDER]->(folder:Folder)
WHERE folder.slug IN $folderSlugs AND folder.deletedAt IS NULL
SET folder.deletedAt = $now, folder.updatedAt = $now
WITH project, count(folder) AS folders
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(document:Document)
WHERE document.slug IN $documentSlugs AND document.deletedAt IS NULL
SET document.deletedAt = $now, document.updatedAt = $now
RETURN folders, count(document) AS documents
"""

# Sections

CREATE_SECTION = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
CREATE (section:DocumentSection)
SET section = $properties
MERGE (document)-[:HAS_SECTION]->(section)
RETURN section
"""

LIST_SECTIONS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})-[:HAS_SECTION]->(section:DocumentSection)
RETURN section
ORDER BY section.order, section.createdAt
"""

_SECTION_MATCH = """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})
"""

GET_SECTION = PROJECT_MATCH + _SECTION_MATCH + """
RETURN section
"""

UPDATE_SECTION = PROJECT_MATCH + _SECTION_MATCH + """
SET {assignments}, section.updatedAt = $now
RETURN section, document.slug AS documentSlug
"""

DELETE_SECTION = PROJECT_MATCH + _SECTION_MATCH + """
DETACH DELETE section
"""

# Infos

_INFO_MATCH = """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document)-[:HAS_INFO]->(info:Info {ref: $ref})
"""

_LINK_INFO_SECTION = """
OPTIONAL MATCH (document)-[:HAS_SECTION]->(section:DocumentSection {id: $sectionId})
FOREACH (_ IN CASE WHEN section IS NULL THEN [] ELSE [section] END |
  MERGE (section)-[:CONTAINS_INFO]->(info)
)
RETURN info, section IS NOT NULL AS sectionLinked
"""

INFO_REF_TAKEN = PROJECT_MATCH + """
OPTIONAL MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:HAS_INFO]->(info:Info {ref: $ref})
RETURN count(info) > 0 AS taken
"""

CREATE_INFO = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(document:Document {slug: $documentSlug})
WHERE document.deletedAt IS NULL
CREATE (info:Info)
SET info = $properties
MERGE (document)-[:HAS_INFO]->(info)
WITH document, info
""" + _LINK_INFO_SECTION

UPDATE_INFO = PROJECT_MATCH + _INFO_MATCH + """
SET {assignments}, info.updatedAt = $now
RETURN info
"""

RELINK_INFO_SECTION = PROJECT_MATCH + _INFO_MATCH + """
OPTIONAL MATCH (info)<-[previous:CONTAINS_INFO]-(:DocumentSection)
DELETE previous
WITH DISTINCT document, info
""" + _LINK_INFO_SECTION

DELETE_INFO = PROJECT_MATCH + _INFO_MATCH + """
DETACH DELETE info
"""

LIST_DOCUMENT_INFOS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(:Document {slug: $documentSlug})-[:HAS_INFO]->(info:Info)
RETURN info
ORDER BY info.createdAt
"""

LIST_SECTION_INFOS = PROJECT_MATCH + """
MATCH (project)-[:HAS_DOCUMENT]->(:Document)-[:HAS_SECTION]->(:DocumentSection {id: $sectionId})-[:CONTAINS_INFO]->(info:Info)
RETURN info
ORDER BY coalesce(info.order, 999999), info.createdAt
"""

import os
import glob
import logging
import itertools
from collections import namedtuple,deque
import xml.etree.ElementTree as ET
import numpy as np
from pffrg.lattice import Lattice,LatticeOverlap
from pffrg.spinModel import SpinModel
from pffrg.inputParser import stringToFloat
from pffrg.exceptions import ConfigurationError

logger=logging.getLogger(__name__)

LatticeSite=namedtuple('LatticeSite',['a0','a1','a2','b'])

SymmetryElement=namedtuple('SymmetryElement',['rotation','source','target','permutation'])

_tol=1e-6
_componentIndex={'x':0,'y':1,'z':2}

def defaultResourcePath():
    return os.path.join(os.path.dirname(os.path.abspath(__file__)),'resources')

class LatticeBond:
    """Bond from basis site fromB to basis site toB in the unit cell displaced by (da0,da1,da2)."""
    def __init__(self,fromB,toB,da0,da1,da2):
        self.fromB=fromB
        self.toB=toB
        self.da0=da0
        self.da1=da1
        self.da2=da2

    def isAttachedToSite(self,site):
        return site.b==self.fromB or site.b==self.toB

    def getOtherEnd(self,site):
        ends=[]
        if site.b==self.fromB:
            ends.append(LatticeSite(site.a0+self.da0,site.a1+self.da1,site.a2+self.da2,self.toB))
        if site.b==self.toB:
            ends.append(LatticeSite(site.a0-self.da0,site.a1-self.da1,site.a2-self.da2,self.fromB))
        return ends

    def isConnectingSites(self,site1,site2):
        return site2 in self.getOtherEnd(site1)

def _findDefinition(tag,name,resourcePath):
    files=sorted(glob.glob(os.path.join(resourcePath,'*.xml')))
    if len(files)==0:
        raise ConfigurationError('No resource files found in '+resourcePath)
    for fileName in files:
        try:
            root=ET.parse(fileName).getroot()
        except ET.ParseError as e:
            raise ConfigurationError('Malformed resource file '+fileName) from e
        for node in root.iter(tag):
            if node.get('name')==name:
                return node
    raise ConfigurationError('Could not find %s definition \'%s\' in %s'%(tag,name,resourcePath))

def _parseSite(text):
    values=[int(x) for x in text.split(',')]
    if len(values)!=4:
        raise ConfigurationError('Invalid lattice site specification \''+text+'\'')
    return LatticeSite(*values)

class LatticeUnitCell:
    """
    Unit cell of a lattice.

    ...
    Attributes
    ----------
    latticeVectors : array_like(float, ndim=2)
        The three Bravais lattice vectors, one per row

    basisSites : array_like(float, ndim=2)
        Positions of the basis sites

    latticeBonds : list of LatticeBond
        Bonds which define the lattice connectivity
    """
    def __init__(self,latticeVectors,basisSites,latticeBonds):
        self.latticeVectors=np.array(latticeVectors,dtype=np.float64).reshape(3,3)
        self.basisSites=np.array(basisSites,dtype=np.float64).reshape(-1,3)
        self.latticeBonds=list(latticeBonds)
        if len(self.basisSites)==0:
            raise ConfigurationError('Unit cell must contain at least one basis site')
        for bond in self.latticeBonds:
            if not (0<=bond.fromB<len(self.basisSites) and 0<=bond.toB<len(self.basisSites)):
                raise ConfigurationError('Lattice bond refers to an undefined basis site')

    @classmethod
    def fromResources(cls,latticeName,resourcePath):
        node=_findDefinition('unitcell',latticeName,resourcePath)
        try:
            vectors=[[float(p.get(c)) for c in 'xyz'] for p in node.findall('primitive')]
            basis=[[float(p.get(c)) for c in 'xyz'] for p in node.findall('site')]
            bonds=[LatticeBond(int(p.get('from')),int(p.get('to')),int(p.get('da0')),int(p.get('da1')),int(p.get('da2'))) \
                for p in node.findall('bond')]
        except (TypeError,ValueError) as e:
            raise ConfigurationError('Invalid unit cell definition \''+latticeName+'\'') from e
        if len(vectors)!=3:
            raise ConfigurationError('Unit cell \''+latticeName+'\' must define three primitive vectors')
        return cls(vectors,basis,bonds)

class SpinInteraction:
    """Two-spin interaction J[s1][s2] between the lattice sites fromSite and toSite."""
    def __init__(self,fromSite,toSite,interactionStrength=None):
        self.fromSite=fromSite
        self.toSite=toSite
        if interactionStrength is None:
            interactionStrength=np.zeros((3,3))
        self.interactionStrength=np.array(interactionStrength,dtype=np.float64).reshape(3,3)

class SpinModelUnitCell:
    """
    Interactions of a spin model, given relative to the unit cell.

    ...
    Attributes
    ----------
    interactions : list of SpinInteraction

    interactionParameters : list of str
        Parameter names used in the model definition
    """
    def __init__(self,interactions,interactionParameters=()):
        self.interactions=list(interactions)
        self.interactionParameters=sorted(set(interactionParameters))

    @classmethod
    def fromResources(cls,modelName,resourcePath,modelOptions):
        """
        Parameters
        ----------
        modelName : str
            Name of the model definition

        resourcePath : str
            Directory of the resource files

        modelOptions : dict
            Values of the interaction parameters
        """
        node=_findDefinition('model',modelName,resourcePath)
        interactions=[]
        parameters=[]
        for p in node.findall('interaction'):
            name=p.get('parameter')
            kind=p.get('type','heisenberg').lower()
            if name is None or p.get('from') is None or p.get('to') is None:
                raise ConfigurationError('Interaction in model \''+modelName+'\' requires parameter, from and to attributes')
            if name not in modelOptions:
                raise ConfigurationError('Model parameter \''+name+'\' is not specified')
            value=modelOptions[name]
            if isinstance(value,str):
                value=stringToFloat(value)
            parameters.append(name)

            strength=np.zeros((3,3))
            if kind=='heisenberg':
                strength+=value*np.eye(3)
            elif len(kind)==2 and kind[0] in _componentIndex and kind[1] in _componentIndex:
                strength[_componentIndex[kind[0]],_componentIndex[kind[1]]]+=value
            else:
                raise ConfigurationError('Unknown interaction type \''+kind+'\'')

            fromSite,toSite=_parseSite(p.get('from')),_parseSite(p.get('to'))
            if fromSite==toSite:
                raise ConfigurationError('On-site interactions are not supported')
            interactions.append(SpinInteraction(fromSite,toSite,strength))

        unusedOptions=set(modelOptions)-set(parameters)
        for name in sorted(unusedOptions):
            logger.warning('Model parameter \'%s\' is not used by model \'%s\'',name,modelName)
        return cls(interactions,parameters)

class _LatticeBuilder:
    """
    Owns the raw tables while a lattice is assembled and hands them to
    an immutable Lattice once all of them are complete.
    """
    def __init__(self,unitCell,modelUnitCell,latticeRange):
        if latticeRange<1:
            raise ConfigurationError('Lattice range must be at least one bond')
        self.latticeRange=int(latticeRange)
        self.unitCell=unitCell
        self.vectors=unitCell.latticeVectors
        if abs(np.linalg.det(self.vectors))<_tol:
            raise ConfigurationError('Lattice vectors must be linearly independent')
        self.inverse=np.linalg.inv(self.vectors)
        self.basis=unitCell.basisSites

        self.couplings={}
        for interaction in modelUnitCell.interactions:
            f,t=interaction.fromSite,interaction.toSite
            d=(t.a0-f.a0,t.a1-f.a1,t.a2-f.a2)
            self._addCoupling((f.b,t.b,d),interaction.interactionStrength)
            self._addCoupling((t.b,f.b,(-d[0],-d[1],-d[2])),interaction.interactionStrength.T)

        self._neighborCache={}

    def _addCoupling(self,key,strength):
        if key in self.couplings:
            self.couplings[key]=self.couplings[key]+strength
        else:
            self.couplings[key]=np.array(strength)

    def position(self,site):
        return site.a0*self.vectors[0]+site.a1*self.vectors[1]+site.a2*self.vectors[2]+self.basis[site.b]

    def siteAt(self,x):
        for b in range(len(self.basis)):
            n=(x-self.basis[b])@self.inverse
            r=np.rint(n)
            if np.abs(n-r).max()<_tol:
                return LatticeSite(int(r[0]),int(r[1]),int(r[2]),b)
        return None

    def neighbors(self,site):
        if site not in self._neighborCache:
            ends=[]
            for bond in self.unitCell.latticeBonds:
                for e in bond.getOtherEnd(site):
                    if e!=site and e not in ends:
                        ends.append(e)
            self._neighborCache[site]=ends
        return self._neighborCache[site]

    def ball(self,center):
        """Sites within lattice range of center in breadth first order, and their distances."""
        distance={center:0}
        order=[center]
        queue=deque([center])
        while queue:
            site=queue.popleft()
            if distance[site]==self.latticeRange:
                continue
            for n in self.neighbors(site):
                if n not in distance:
                    distance[n]=distance[site]+1
                    order.append(n)
                    queue.append(n)
        return order,distance

    def coupling(self,s1,s2):
        return self.couplings.get((s1.b,s2.b,(s2.a0-s1.a0,s2.a1-s1.a1,s2.a2-s1.a2)))

    def _coupledPairs(self,sites):
        members=set(sites)
        pairs=[]
        for s1 in sites:
            for (b1,b2,d),strength in self.couplings.items():
                if b1!=s1.b:
                    continue
                s2=LatticeSite(s1.a0+d[0],s1.a1+d[1],s1.a2+d[2],b2)
                if s2 in members:
                    pairs.append((s1,s2,strength))
        return pairs

    def _matchTuples(self,chosen,candidates):
        def extend(prefix):
            k=len(prefix)
            if k==len(chosen):
                yield list(prefix)
                return
            for w in candidates:
                if abs(np.dot(w,w)-np.dot(chosen[k],chosen[k]))>_tol:
                    continue
                if any(abs(np.dot(w,prefix[l])-np.dot(chosen[k],chosen[l]))>_tol for l in range(k)):
                    continue
                yield from extend(prefix+[w])
        yield from extend([])

    def findSymmetries(self,source,target,firstOnly=False):
        """
        Isometries which map source onto target and leave the lattice
        within range as well as the couplings invariant.
        """
        srcSites,_=self.ball(source)
        dstSites,_=self.ball(target)
        if len(srcSites)!=len(dstSites):
            return []
        pSrc,pDst=self.position(source),self.position(target)
        srcVectors=sorted([self.position(s)-pSrc for s in srcSites[1:]],key=lambda v:(round(float(np.dot(v,v)),6),tuple(np.round(v,6))))
        dstVectors=[self.position(s)-pDst for s in dstSites[1:]]

        chosen=[]
        for v in srcVectors:
            if np.linalg.matrix_rank(np.array(chosen+[v]),tol=_tol)>len(chosen):
                chosen.append(v)
            if len(chosen)==3:
                break
        if len(chosen)>0:
            _,_,vt=np.linalg.svd(np.array(chosen))
            complement=list(vt[len(chosen):])
        else:
            complement=list(np.eye(3))

        dstSet=set(dstSites)
        srcPairs=self._coupledPairs(srcSites)
        dstPairCount=len(self._coupledPairs(dstSites))
        if len(srcPairs)!=dstPairCount:
            return []

        elements=[]
        rotations=[]
        for images in self._matchTuples(chosen,dstVectors):
            a=np.array(chosen+complement)
            b=np.array(images+complement)
            rotation=b.T@np.linalg.inv(a.T)
            if np.abs(rotation@rotation.T-np.eye(3)).max()>_tol:
                continue
            if any(np.abs(rotation-r).max()<_tol for r in rotations):
                continue

            mapping={}
            for s in srcSites:
                t=self.siteAt(rotation@(self.position(s)-pSrc)+pDst)
                if t is None or t not in dstSet:
                    break
                mapping[s]=t
            if len(mapping)!=len(srcSites):
                continue
            if not all(mapping[n] in self.neighbors(mapping[s]) for s in srcSites for n in self.neighbors(s) if n in mapping):
                continue

            permutation=self._matchPermutation([(strength,self.coupling(mapping[s1],mapping[s2])) for s1,s2,strength in srcPairs])
            if permutation is None:
                continue

            rotations.append(rotation)
            elements.append(SymmetryElement(rotation,pSrc,pDst,permutation))
            if firstOnly:
                break

        elements.sort(key=lambda e:(np.abs(e.rotation-np.eye(3)).max()>_tol,tuple(e.permutation)))
        return elements

    def _matchPermutation(self,couplingPairs):
        for p in itertools.permutations(range(3)):
            p=np.array(p)
            match=True
            for jSrc,jDst in couplingPairs:
                if jDst is None or np.abs(jDst[np.ix_(p,p)]-jSrc).max()>_tol:
                    match=False
                    break
            if match:
                return p
        return None

    def build(self):
        origin=LatticeSite(0,0,0,0)
        p0=self.position(origin)
        originSites,originDistance=self.ball(origin)

        stabilizer=self.findSymmetries(origin,origin)
        if len(stabilizer)==0 or np.abs(stabilizer[0].rotation-np.eye(3)).max()>_tol:
            raise ConfigurationError('Spin model is not invariant under lattice translations')
        basisMaps=[stabilizer[0]]
        for b in range(1,len(self.basis)):
            found=self.findSymmetries(LatticeSite(0,0,0,b),origin,firstOnly=True)
            if len(found)==0:
                raise ConfigurationError('Lattice sites are not symmetry equivalent, basis site %d cannot be mapped onto the reference site'%b)
            basisMaps.append(found[0])
        logger.debug('Found %d point symmetries of the reference site',len(stabilizer))

        def apply(element,x):
            return element.rotation@(x-element.source)+element.target

        representatives=[]
        repOf={}
        for s in originSites:
            if s in repOf:
                continue
            repOf[s]=len(representatives)
            for h in stabilizer:
                repOf.setdefault(self.siteAt(apply(h,self.position(s))),len(representatives))
            representatives.append(s)

        reduction={}
        for s in originSites:
            rid=repOf[s]
            for h in stabilizer:
                if self.siteAt(apply(h,self.position(s)))==representatives[rid]:
                    reduction[s]=(rid,h.permutation)
                    break

        dataSites=list(representatives)
        index={s:i for i,s in enumerate(dataSites)}
        for s in originSites:
            if s not in index:
                index[s]=len(dataSites)
                dataSites.append(s)
        rangeSites=[]
        for b in range(len(self.basis)):
            sites,_=self.ball(LatticeSite(0,0,0,b))
            for s in sites:
                if s not in index:
                    index[s]=len(dataSites)
                    dataSites.append(s)
            rangeSites.append([index[s] for s in sites])

        n=len(dataSites)
        symmetryRid=-np.ones((n,n),dtype=np.int64)
        symmetryPermutation=np.tile(np.arange(4,dtype=np.int64),(n,n,1))
        positions=np.array([self.position(s) for s in dataSites])
        for i,si in enumerate(dataSites):
            g=basisMaps[si.b]
            images=(positions-positions[i])@g.rotation.T+p0
            for j in range(n):
                t=self.siteAt(images[j])
                if t not in reduction:
                    continue
                rid,permutation=reduction[t]
                symmetryRid[i,j]=rid
                symmetryPermutation[i,j,:3]=permutation[g.permutation]

        size=len(representatives)
        originIds=[index[s] for s in originSites]
        overlaps=[]
        for r in range(size):
            members=[j for j in originIds if symmetryRid[j,r]>=0]
            overlaps.append(LatticeOverlap([symmetryRid[0,j] for j in members],[symmetryRid[j,r] for j in members],\
                [symmetryPermutation[0,j] for j in members],[symmetryPermutation[j,r] for j in members]))

        bonds=[]
        for i,si in enumerate(dataSites):
            for nb in self.neighbors(si):
                j=index.get(nb)
                if j is not None and i<j:
                    bonds.append((i,j))

        lattice=Lattice(self.vectors,self.basis,[tuple(s) for s in dataSites],size,symmetryRid,symmetryPermutation,\
            overlaps,[index[LatticeSite(0,0,0,b)] for b in range(len(self.basis))],rangeSites,bonds)

        interactions=[]
        for (b1,b2,d),strength in sorted(self.couplings.items(),key=lambda x:(x[0][0],x[0][1],x[0][2])):
            s1=LatticeSite(0,0,0,b1)
            s2=LatticeSite(d[0],d[1],d[2],b2)
            t=self.siteAt(apply(basisMaps[b1],self.position(s2)-self.position(s1)+basisMaps[b1].source))
            if t not in reduction:
                raise ConfigurationError('Spin interaction between basis site %d and %s exceeds the lattice range'%(b1,str(tuple(s2))))
            if b1==0 and s2 in index and index[s2]<size:
                interactions.append((index[s2],strength))

        logger.info('Lattice initialized with %d representatives and %d data sites',size,n)
        return lattice,SpinModel(interactions)

def writeLatticeDescription(lattice,ldfPath):
    """Writes an XML description of all data sites and bonds of the lattice."""
    root=ET.Element('lattice',{'size':str(lattice.size),'dataSize':str(lattice.dataSize)})
    for i in range(lattice.dataSize):
        a0,a1,a2,b=lattice.getSiteParameters(i)
        x,y,z=lattice.getSitePosition(i)
        attributes={'id':str(i),'x':'%.8f'%x,'y':'%.8f'%y,'z':'%.8f'%z,'a0':str(a0),'a1':str(a1),'a2':str(a2),'b':str(b)}
        if lattice.isInRange(0,i):
            attributes['rid']=str(lattice.symmetryTransform(0,i))
        ET.SubElement(root,'site',attributes)
    for i,j in lattice.bonds:
        ET.SubElement(root,'bond',{'from':str(i),'to':str(j)})
    tree=ET.ElementTree(root)
    try:
        tree.write(ldfPath,encoding='utf-8',xml_declaration=True)
    except OSError as e:
        raise ConfigurationError('Could not write lattice description to '+ldfPath) from e
    logger.info('Lattice description written to %s',ldfPath)

def newLatticeModel(unitCell,modelUnitCell,latticeRange,ldfPath=None):
    """
    Parameters
    ----------
    unitCell : LatticeUnitCell
        Lattice definition

    modelUnitCell : SpinModelUnitCell
        Spin interactions of the model

    latticeRange : int
        Maximum distance, in bonds, of two sites with non-zero vertex

    ldfPath : str, optional
        Lattice description output for debugging

    Returns
    -------
    lattice : Lattice

    spinModel : SpinModel
    """
    lattice,spinModel=_LatticeBuilder(unitCell,modelUnitCell,latticeRange).build()
    if ldfPath is not None:
        writeLatticeDescription(lattice,ldfPath)
    return lattice,spinModel
